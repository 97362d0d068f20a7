"""Tenant context primitives"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

TENANT_COLUMN = "clinic_id"


class TenantScopingError(RuntimeError):
    """Raised when a data access cannot be proven to stay inside one clinic.

    This signals a caller bug and is never converted into a user-facing result.
    """


@dataclass(frozen=True)
class TenantContext:
    clinic_id: str
    user_id: Optional[str] = None
    role: Optional[str] = None


def assert_clinic_id(clinic_id: Any) -> str:
    if not isinstance(clinic_id, str) or len(clinic_id.strip()) < 3:
        raise TenantScopingError("A valid clinic_id is required for tenant-scoped access.")
    return clinic_id


def merge_tenant_filters(filters: Optional[Dict[str, Any]], clinic_id: str) -> Dict[str, Any]:
    """Return a copy of `filters` with the mandatory clinic_id equality.

    A caller-supplied clinic_id that differs from the scope is rejected.
    """
    scoped_clinic_id = assert_clinic_id(clinic_id)
    merged = dict(filters or {})

    if TENANT_COLUMN in merged and merged[TENANT_COLUMN] != scoped_clinic_id:
        raise TenantScopingError(
            f"Tenant scope mismatch: expected clinic_id={scoped_clinic_id}."
        )

    merged[TENANT_COLUMN] = scoped_clinic_id
    return merged


def inject_tenant_into_create_data(
        data: Union[Dict[str, Any], List[Dict[str, Any]]],
        clinic_id: str
) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
    """Stamp clinic_id onto one row or a batch, overwriting any supplied value"""
    scoped_clinic_id = assert_clinic_id(clinic_id)

    def apply(row: Dict[str, Any]) -> Dict[str, Any]:
        supplied = row.get(TENANT_COLUMN)
        if supplied is not None and supplied != scoped_clinic_id:
            logger.warning(
                f"Overwriting caller-supplied clinic_id={supplied} with tenant scope {scoped_clinic_id}"
            )
        return {**row, TENANT_COLUMN: scoped_clinic_id}

    if isinstance(data, list):
        return [apply(row) for row in data]
    return apply(data)
