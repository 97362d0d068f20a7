# clinicbook/api/v1/dashboard/notifications.py
"""Notification history for the clinic dashboard"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinicbook.api.dependencies import get_tenant_db
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.notification import NotificationChannel, NotificationType
from clinicbook.services.notification.notification_service import NotificationAdmissionGuard

router = APIRouter()


@router.get("/")
def list_notifications(
        patient_id: Optional[str] = Query(None, alias="patientId"),
        appointment_id: Optional[str] = Query(None, alias="appointmentId"),
        channel: Optional[NotificationChannel] = None,
        type: Optional[NotificationType] = None,
        tenant_db: TenantScopedSession = Depends(get_tenant_db)
):
    notifications = NotificationAdmissionGuard.list_notifications(
        tenant_db,
        patient_id=patient_id,
        appointment_id=appointment_id,
        channel=channel.value if channel else None,
        type=type.value if type else None,
    )
    return {
        "total": len(notifications),
        "notifications": [n.to_dict() for n in notifications],
    }
