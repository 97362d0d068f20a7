# clinicbook/models/__init__.py
from .base import Base
from .clinic import Clinic, OperatingHours
from .service import Service
from .patient import Patient
from .appointment import Appointment, AppointmentStatus, AppointmentSource
from .invoice import Invoice
from .notification import Notification, NotificationType, NotificationChannel, NotificationStatus

__all__ = [
    "Base",
    "Clinic",
    "OperatingHours",
    "Service",
    "Patient",
    "Appointment",
    "AppointmentStatus",
    "AppointmentSource",
    "Invoice",
    "Notification",
    "NotificationType",
    "NotificationChannel",
    "NotificationStatus",
]
