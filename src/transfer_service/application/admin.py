from dataclasses import dataclass

import structlog

from transfer_service.application.delivery import DeliveryPipeline, DeliveryResult, DeliveryStats
from transfer_service.application.notifications import NotificationComposer, ReceiptDetails
from transfer_service.domain.exceptions import AdminAccessRequiredError, ValidationError
from transfer_service.domain.models import DeliveryAttemptLog, NotificationType, PendingRetryEntry
from transfer_service.domain.ports import AdminPolicy


logger = structlog.get_logger()


class StaticAdminPolicy:
    """Admin capability backed by a fixed allow-list of emails."""

    def __init__(self, admin_emails: frozenset[str] | set[str]) -> None:
        self._admins = frozenset(e.strip().lower() for e in admin_emails)

    def is_admin(self, email: str) -> bool:
        return email.strip().lower() in self._admins


@dataclass
class DeliveryLogPage:
    logs: list[DeliveryAttemptLog]
    successful: int
    failed: int

    @property
    def total(self) -> int:
        return len(self.logs)


@dataclass
class FailedDeliveries:
    entries: list[PendingRetryEntry]

    @property
    def count(self) -> int:
        return len(self.entries)


class AdminService:
    """Operator read and replay access over the delivery pipeline."""

    def __init__(self, pipeline: DeliveryPipeline, policy: AdminPolicy, composer: NotificationComposer) -> None:
        self._pipeline = pipeline
        self._policy = policy
        self._composer = composer

    def _require_admin(self, actor_email: str) -> None:
        if not self._policy.is_admin(actor_email):
            logger.warning("admin_access_denied", actor=actor_email)
            raise AdminAccessRequiredError(actor_email)

    async def delivery_logs(self, actor_email: str, limit: int = 100) -> DeliveryLogPage:
        self._require_admin(actor_email)
        logs = await self._pipeline.logs(limit)
        successful = sum(1 for log in logs if log.success)
        return DeliveryLogPage(logs=logs, successful=successful, failed=len(logs) - successful)

    async def delivery_failed(self, actor_email: str) -> FailedDeliveries:
        self._require_admin(actor_email)
        return FailedDeliveries(entries=await self._pipeline.pending())

    async def delivery_retry(self, actor_email: str, delivery_id: str) -> DeliveryResult:
        self._require_admin(actor_email)
        logger.info("admin_delivery_retry", actor=actor_email, delivery_id=delivery_id)
        return await self._pipeline.retry(delivery_id)

    async def delivery_stats(self, actor_email: str) -> DeliveryStats:
        self._require_admin(actor_email)
        return await self._pipeline.stats()

    async def send_test(
        self,
        actor_email: str,
        notification_type: str,
        email: str,
        name: str,
        receipt: ReceiptDetails | None = None,
    ) -> DeliveryResult:
        """Deliver a sample notification so operators can check the transport."""
        self._require_admin(actor_email)
        try:
            kind = NotificationType(notification_type)
        except ValueError:
            raise ValidationError(f"Invalid email type: {notification_type}", field="type") from None

        if kind is NotificationType.VERIFICATION:
            message = self._composer.verification(email, name, "000000")
        elif kind is NotificationType.WELCOME:
            message = self._composer.welcome(email, name)
        else:
            if receipt is None:
                raise ValidationError("Transaction data required for receipt", field="receipt")
            message = self._composer.receipt(receipt)

        logger.info("admin_test_delivery", actor=actor_email, notification_type=kind.value, to=message.to)
        return await self._pipeline.deliver(message, kind)
