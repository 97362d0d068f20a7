# ============================================================================
# clinicbook/services/notification/notification_service.py
# ============================================================================
"""
Notification admission and delivery.

A notification is admitted only if its idempotency key has not already
produced a record and the recipient has fewer than `daily_cap` non-failed
notifications of the same type and channel on the current UTC day. Admitted
records start PENDING and end SENT or FAILED after one provider attempt.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from clinicbook.config.settings import settings
from clinicbook.core.results import ErrorCode, Failure, Ok, Result
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from clinicbook.utils.time_utils import to_utc, utcnow

logger = logging.getLogger(__name__)

EmailSender = Callable[..., Dict[str, Any]]
SmsSender = Callable[..., Dict[str, Any]]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def normalize_recipient(
        patient_id: Optional[str] = None,
        recipient_email: Optional[str] = None,
        recipient_phone: Optional[str] = None
) -> Optional[str]:
    """Patient id, else lower-cased email, else phone"""
    email = _clean(recipient_email)
    return _clean(patient_id) or (email.lower() if email else None) or _clean(recipient_phone)


def utc_day_bounds(instant: datetime):
    start = to_utc(instant).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


@dataclass
class QueuedNotification:
    notification: Notification
    replayed: bool
    daily_count_for_recipient: int


@dataclass
class DeliveryResult:
    notification: Notification
    replayed: bool
    provider_message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification": self.notification.to_dict(),
            "replayed": self.replayed,
            "providerMessageId": self.provider_message_id,
        }


def _default_email_sender(**kwargs) -> Dict[str, Any]:
    from clinicbook.services.email.email_service import EmailService
    return EmailService.send_email(**kwargs)


def _default_sms_sender(**kwargs) -> Dict[str, Any]:
    from clinicbook.services.sms.sms_service import SMSService
    return SMSService().send_sms(**kwargs)


class NotificationAdmissionGuard:
    """Rate limits and de-duplicates notifications per recipient"""

    def __init__(
            self,
            daily_cap: Optional[int] = None,
            email_sender: Optional[EmailSender] = None,
            sms_sender: Optional[SmsSender] = None,
            lock: Optional[threading.Lock] = None
    ):
        self.daily_cap = settings.DAILY_NOTIFICATION_CAP if daily_cap is None else daily_cap
        self.email_sender = email_sender or _default_email_sender
        self.sms_sender = sms_sender or _default_sms_sender
        self._lock = lock or threading.Lock()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def count_for_daily_cap(
            self,
            tenant_db: TenantScopedSession,
            type: str,
            channel: str,
            recipient_key: str,
            day: datetime
    ) -> int:
        """Non-failed notifications of this type/channel for the recipient on the UTC day"""
        day_start, day_end = utc_day_bounds(day)
        candidates = tenant_db.find_many(
            Notification,
            filters={"type": type, "channel": channel},
            where=[
                Notification.created_at >= day_start,
                Notification.created_at < day_end,
                Notification.status != NotificationStatus.FAILED.value,
            ],
        )
        return sum(1 for record in candidates if record.recipient_key == recipient_key)

    def _find_by_idempotency_key(self, tenant_db: TenantScopedSession, idempotency_key: str):
        return tenant_db.find_first(Notification, filters={"idempotency_key": idempotency_key})

    def queue_notification(
            self,
            tenant_db: TenantScopedSession,
            type: NotificationType,
            channel: NotificationChannel,
            appointment_id: Optional[str] = None,
            patient_id: Optional[str] = None,
            recipient_email: Optional[str] = None,
            recipient_phone: Optional[str] = None,
            idempotency_key: Optional[str] = None,
            metadata: Optional[Dict[str, str]] = None,
            now: Optional[datetime] = None
    ) -> Result:
        """Admit a PENDING notification, replay a prior one, or refuse"""
        type = NotificationType(type).value
        channel = NotificationChannel(channel).value

        if channel == NotificationChannel.EMAIL.value and not _clean(recipient_email):
            return Failure(
                ErrorCode.RECIPIENT_EMAIL_REQUIRED,
                "recipientEmail is required for EMAIL notifications.",
            )
        if channel == NotificationChannel.SMS.value and not _clean(recipient_phone):
            return Failure(
                ErrorCode.RECIPIENT_PHONE_REQUIRED,
                "recipientPhone is required for SMS notifications.",
            )

        idempotency_key = _clean(idempotency_key)
        now = to_utc(now) if now is not None else utcnow()

        with self._lock:
            if idempotency_key:
                existing = self._find_by_idempotency_key(tenant_db, idempotency_key)
                if existing is not None:
                    logger.info(f"Replaying notification {existing.id} for key {idempotency_key}")
                    return Ok(QueuedNotification(
                        notification=existing,
                        replayed=True,
                        daily_count_for_recipient=self.count_for_daily_cap(
                            tenant_db,
                            existing.type,
                            existing.channel,
                            existing.recipient_key or "unknown",
                            existing.created_at,
                        ),
                    ))

            recipient_key = normalize_recipient(patient_id, recipient_email, recipient_phone)
            if not recipient_key:
                return Failure(
                    ErrorCode.RECIPIENT_REQUIRED,
                    "A patientId, recipientEmail, or recipientPhone is required.",
                )

            daily_count = self.count_for_daily_cap(tenant_db, type, channel, recipient_key, now)
            if daily_count >= self.daily_cap:
                logger.warning(
                    f"Daily notification cap reached for {recipient_key} "
                    f"({type}/{channel}, clinic {tenant_db.clinic_id})"
                )
                return Failure(
                    ErrorCode.DAILY_NOTIFICATION_CAP_REACHED,
                    "Daily notification cap reached for this recipient and notification type/channel.",
                    details={
                        "cap": self.daily_cap,
                        "recipientKey": recipient_key,
                        "type": type,
                        "channel": channel,
                    },
                )

            email = _clean(recipient_email)
            notification = tenant_db.create(Notification, {
                "appointment_id": _clean(appointment_id),
                "patient_id": _clean(patient_id),
                "type": type,
                "channel": channel,
                "recipient_email": email.lower() if email else None,
                "recipient_phone": _clean(recipient_phone),
                "status": NotificationStatus.PENDING.value,
                "idempotency_key": idempotency_key,
                "meta": dict(metadata) if metadata else None,
                "created_at": now,
            })
            tenant_db.commit()

        return Ok(QueuedNotification(
            notification=notification,
            replayed=False,
            daily_count_for_recipient=daily_count + 1,
        ))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(
            tenant_db: TenantScopedSession,
            notification_id: str,
            values: Dict[str, Any]
    ) -> Result:
        updated = tenant_db.update_many(Notification, values, filters={"id": notification_id})
        if not updated:
            return Failure(ErrorCode.NOTIFICATION_NOT_FOUND, "Notification not found.")
        tenant_db.commit()
        return Ok(tenant_db.find_first(Notification, filters={"id": notification_id}))

    def mark_sent(
            self,
            tenant_db: TenantScopedSession,
            notification_id: str,
            sent_at: Optional[datetime] = None,
            provider_message_id: Optional[str] = None
    ) -> Result:
        return self._transition(tenant_db, notification_id, {
            "status": NotificationStatus.SENT.value,
            "sent_at": to_utc(sent_at) if sent_at is not None else utcnow(),
            "error_message": None,
            "provider_message_id": provider_message_id,
        })

    def mark_failed(self, tenant_db: TenantScopedSession, notification_id: str, error_message: str) -> Result:
        return self._transition(tenant_db, notification_id, {
            "status": NotificationStatus.FAILED.value,
            "error_message": (error_message or "").strip() or "Unknown notification error",
        })

    @staticmethod
    def list_notifications(
            tenant_db: TenantScopedSession,
            patient_id: Optional[str] = None,
            appointment_id: Optional[str] = None,
            channel: Optional[str] = None,
            type: Optional[str] = None
    ) -> List[Notification]:
        """Clinic notifications, newest first"""
        filters = {}
        if patient_id:
            filters["patient_id"] = patient_id
        if appointment_id:
            filters["appointment_id"] = appointment_id
        if channel:
            filters["channel"] = channel
        if type:
            filters["type"] = type

        return tenant_db.find_many(
            Notification,
            filters=filters,
            order_by=[Notification.created_at.desc()],
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver(
            self,
            tenant_db: TenantScopedSession,
            queued: QueuedNotification,
            send: Callable[[], Dict[str, Any]],
            channel_label: str
    ) -> Result:
        notification = queued.notification
        if queued.replayed:
            return Ok(DeliveryResult(notification=notification, replayed=True))

        try:
            delivery = send()
        except Exception as e:
            logger.error(f"{channel_label} delivery failed for notification {notification.id}: {e}", exc_info=True)
            failed = self.mark_failed(tenant_db, notification.id, str(e))
            if not failed.ok:
                return failed
            return Failure(
                ErrorCode.NOTIFICATION_DELIVERY_FAILED,
                f"{channel_label} notification could not be sent.",
                details={
                    "notificationId": failed.data.id,
                    "error": failed.data.error_message,
                },
            )

        provider_message_id = (delivery or {}).get("providerMessageId")
        sent = self.mark_sent(tenant_db, notification.id, provider_message_id=provider_message_id)
        if not sent.ok:
            return sent

        logger.info(f"{channel_label} notification {notification.id} sent")
        return Ok(DeliveryResult(
            notification=sent.data,
            replayed=False,
            provider_message_id=provider_message_id,
        ))

    def send_email(
            self,
            tenant_db: TenantScopedSession,
            type: NotificationType,
            recipient_email: str,
            subject: str,
            html: str,
            text: Optional[str] = None,
            patient_id: Optional[str] = None,
            appointment_id: Optional[str] = None,
            idempotency_key: Optional[str] = None,
            metadata: Optional[Dict[str, str]] = None,
            now: Optional[datetime] = None
    ) -> Result:
        queued = self.queue_notification(
            tenant_db,
            type=type,
            channel=NotificationChannel.EMAIL,
            appointment_id=appointment_id,
            patient_id=patient_id,
            recipient_email=recipient_email,
            idempotency_key=idempotency_key,
            metadata=metadata,
            now=now,
        )
        if not queued.ok:
            return queued

        return self._deliver(
            tenant_db,
            queued.data,
            lambda: self.email_sender(
                to_email=recipient_email.strip(),
                subject=subject,
                html_content=html,
                plain_text=text,
            ),
            "Email",
        )

    def send_sms(
            self,
            tenant_db: TenantScopedSession,
            type: NotificationType,
            recipient_phone: str,
            body: str,
            patient_id: Optional[str] = None,
            appointment_id: Optional[str] = None,
            idempotency_key: Optional[str] = None,
            metadata: Optional[Dict[str, str]] = None,
            now: Optional[datetime] = None
    ) -> Result:
        queued = self.queue_notification(
            tenant_db,
            type=type,
            channel=NotificationChannel.SMS,
            appointment_id=appointment_id,
            patient_id=patient_id,
            recipient_phone=recipient_phone,
            idempotency_key=idempotency_key,
            metadata=metadata,
            now=now,
        )
        if not queued.ok:
            return queued

        return self._deliver(
            tenant_db,
            queued.data,
            lambda: self.sms_sender(to_phone=recipient_phone.strip(), message_body=body),
            "SMS",
        )
