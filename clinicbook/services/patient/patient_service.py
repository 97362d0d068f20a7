# ============================================================================
# clinicbook/services/patient/patient_service.py
# ============================================================================
"""Service for managing patients"""
import logging
from typing import List, Optional

from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.patient import Patient

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    return email.strip().lower() or None


class PatientService:
    """Handles patient operations for one clinic"""

    @staticmethod
    def create_patient(
            tenant_db: TenantScopedSession,
            first_name: str,
            last_name: str,
            email: Optional[str] = None,
            phone: Optional[str] = None
    ) -> Patient:
        """Create a new patient"""
        return tenant_db.create(Patient, {
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "email": normalize_email(email),
            "phone": phone.strip() if phone else None,
        })

    @staticmethod
    def find_by_email(tenant_db: TenantScopedSession, email: str) -> Optional[Patient]:
        return tenant_db.find_first(Patient, filters={"email": normalize_email(email)})

    @staticmethod
    def upsert_from_public_booking(
            tenant_db: TenantScopedSession,
            first_name: str,
            last_name: str,
            email: str,
            phone: str
    ) -> Patient:
        """Reuse the clinic's patient with this email, or register a new one"""
        existing = PatientService.find_by_email(tenant_db, email)
        if existing is None:
            patient = PatientService.create_patient(tenant_db, first_name, last_name, email, phone)
            logger.info(f"Registered patient {patient.id} from public booking")
            return patient

        tenant_db.update_many(
            Patient,
            {"phone": phone.strip()},
            filters={"id": existing.id},
        )
        return existing

    @staticmethod
    def list_patients(tenant_db: TenantScopedSession, skip: int = 0, limit: int = 50) -> List[Patient]:
        return tenant_db.find_many(
            Patient,
            order_by=[Patient.last_name, Patient.first_name],
            offset=skip,
            limit=limit,
        )

    @staticmethod
    def get_patient(tenant_db: TenantScopedSession, patient_id: str) -> Optional[Patient]:
        return tenant_db.find_first(Patient, filters={"id": patient_id})
