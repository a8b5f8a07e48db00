from transfer_service.domain.models import VerificationRecord
from transfer_service.infrastructure.repositories.memory import InMemoryRepository


class VerificationRepository(InMemoryRepository[str, VerificationRecord]):
    """At most one live record per email; ``set`` replaces."""
