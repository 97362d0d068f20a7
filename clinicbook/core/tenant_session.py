"""
Tenant-scoped data access.

Every read and write against a clinic-owned table goes through
TenantScopedSession, which pins the query to one clinic_id:

- filtered reads and bulk mutations get `clinic_id = <scope>` merged into
  their filters (a conflicting caller value is rejected);
- creates get clinic_id stamped onto the payload;
- lookups and mutations by primary key are refused, because a global id
  does not prove which clinic owns the row;
- unknown verbs on tenant-scoped models fail closed.

Models that are not tenant-scoped (the Clinic directory itself) pass
through unmodified.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from clinicbook.core.tenant import (
    TenantScopingError,
    assert_clinic_id,
    inject_tenant_into_create_data,
    merge_tenant_filters,
)
from clinicbook.models import Appointment, Invoice, Notification, OperatingHours, Patient, Service

logger = logging.getLogger(__name__)

TENANT_SCOPED_MODELS = frozenset({
    Patient,
    Service,
    OperatingHours,
    Appointment,
    Invoice,
    Notification,
})

READ_VERBS = frozenset({"find_many", "find_first", "count"})
BULK_MUTATION_VERBS = frozenset({"update_many", "delete_many"})
CREATE_VERBS = frozenset({"create", "create_many"})
UNSAFE_POINT_VERBS = frozenset({"get", "get_or_raise", "update", "delete", "upsert"})


def is_tenant_scoped(model) -> bool:
    return model in TENANT_SCOPED_MODELS


class TenantScopedSession:
    """Wraps a SQLAlchemy Session and confines it to one clinic"""

    def __init__(self, session: Session, clinic_id: str):
        self.session = session
        self.clinic_id = assert_clinic_id(clinic_id)

    def __repr__(self):
        return f"<TenantScopedSession(clinic_id={self.clinic_id})>"

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, verb: str, model, **kwargs):
        """Run `verb` against `model` after applying the tenant policy"""
        if not is_tenant_scoped(model):
            return self._run(verb, model, **kwargs)

        if verb in UNSAFE_POINT_VERBS:
            logger.error(f"Refused unscoped {verb} on {model.__name__} (clinic {self.clinic_id})")
            raise TenantScopingError(
                f"Unsafe {verb} on tenant-scoped model {model.__name__}. "
                f"Use find_first/update_many/delete_many with a clinic filter instead."
            )

        if verb in READ_VERBS or verb in BULK_MUTATION_VERBS:
            kwargs["filters"] = merge_tenant_filters(kwargs.get("filters"), self.clinic_id)
            return self._run(verb, model, **kwargs)

        if verb in CREATE_VERBS:
            kwargs["data"] = inject_tenant_into_create_data(kwargs["data"], self.clinic_id)
            return self._run(verb, model, **kwargs)

        logger.error(f"Refused unsupported {verb} on {model.__name__} (clinic {self.clinic_id})")
        raise TenantScopingError(
            f"Operation {verb} on {model.__name__} is not supported by the tenant-scoping guard."
        )

    # ------------------------------------------------------------------
    # Public verbs
    # ------------------------------------------------------------------

    def find_many(
            self,
            model,
            filters: Optional[Dict[str, Any]] = None,
            where: Sequence = (),
            order_by: Sequence = (),
            limit: Optional[int] = None,
            offset: Optional[int] = None,
    ) -> List:
        return self.execute(
            "find_many", model,
            filters=filters, where=where, order_by=order_by, limit=limit, offset=offset,
        )

    def find_first(
            self,
            model,
            filters: Optional[Dict[str, Any]] = None,
            where: Sequence = (),
            order_by: Sequence = (),
    ):
        return self.execute("find_first", model, filters=filters, where=where, order_by=order_by)

    def count(self, model, filters: Optional[Dict[str, Any]] = None, where: Sequence = ()) -> int:
        return self.execute("count", model, filters=filters, where=where)

    def update_many(
            self,
            model,
            values: Dict[str, Any],
            filters: Optional[Dict[str, Any]] = None,
            where: Sequence = (),
    ) -> int:
        return self.execute("update_many", model, values=values, filters=filters, where=where)

    def delete_many(self, model, filters: Optional[Dict[str, Any]] = None, where: Sequence = ()) -> int:
        return self.execute("delete_many", model, filters=filters, where=where)

    def create(self, model, data: Dict[str, Any]):
        return self.execute("create", model, data=data)

    def create_many(self, model, data: Iterable[Dict[str, Any]]) -> List:
        return self.execute("create_many", model, data=list(data))

    def get(self, model, id: Any):
        return self.execute("get", model, id=id)

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def refresh(self, instance):
        self.session.refresh(instance)

    # ------------------------------------------------------------------
    # Execution against the underlying session
    # ------------------------------------------------------------------

    def _query(self, model, filters, where):
        query = self.session.query(model)
        if filters:
            query = query.filter_by(**filters)
        if where:
            query = query.filter(*where)
        return query

    def _run(self, verb: str, model, **kwargs):
        handler = getattr(self, f"_op_{verb}", None)
        if handler is None:
            raise ValueError(f"Unknown data operation: {verb}")
        return handler(model, **kwargs)

    def _op_find_many(self, model, filters=None, where=(), order_by=(), limit=None, offset=None):
        query = self._query(model, filters, where)
        if order_by:
            query = query.order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _op_find_first(self, model, filters=None, where=(), order_by=()):
        query = self._query(model, filters, where)
        if order_by:
            query = query.order_by(*order_by)
        return query.first()

    def _op_count(self, model, filters=None, where=()):
        return self._query(model, filters, where).count()

    def _op_update_many(self, model, values, filters=None, where=()):
        return self._query(model, filters, where).update(values, synchronize_session="fetch")

    def _op_delete_many(self, model, filters=None, where=()):
        return self._query(model, filters, where).delete(synchronize_session="fetch")

    def _op_create(self, model, data):
        instance = model(**data)
        self.session.add(instance)
        self.session.flush()
        return instance

    def _op_create_many(self, model, data):
        instances = [model(**row) for row in data]
        self.session.add_all(instances)
        self.session.flush()
        return instances

    def _op_get(self, model, id):
        return self.session.get(model, id)
