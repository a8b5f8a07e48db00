import copy

from transfer_service.domain.models import DeliveryAttemptLog, PendingRetryEntry
from transfer_service.infrastructure.repositories.memory import InMemoryRepository


class DeliveryLogRepository:
    """Append-only store of terminal delivery logs."""

    def __init__(self) -> None:
        self._logs: list[DeliveryAttemptLog] = []

    def __len__(self) -> int:
        return len(self._logs)

    async def append(self, log: DeliveryAttemptLog) -> None:
        if not log.is_terminal:
            raise ValueError(f"Delivery log {log.id} is still in flight")
        self._logs.append(copy.deepcopy(log))

    async def recent(self, limit: int) -> list[DeliveryAttemptLog]:
        # reversed() first so equal timestamps keep newest-appended first
        ordered = sorted(reversed(self._logs), key=lambda log: log.created_at, reverse=True)
        return [copy.deepcopy(log) for log in ordered[: max(0, limit)]]


class PendingRetryRepository(InMemoryRepository[str, PendingRetryEntry]):
    """Permanently failed deliveries awaiting operator replay."""
