from transfer_service.domain.models import Transaction
from transfer_service.infrastructure.repositories.memory import InMemoryRepository


class TransactionRepository(InMemoryRepository[str, Transaction]):
    async def add(self, transaction: Transaction) -> None:
        # Transactions are frozen, no copy needed
        self._items[transaction.id] = transaction

    async def get(self, key: str) -> Transaction | None:
        return self._items.get(key)

    async def for_account(self, email: str) -> list[Transaction]:
        return [t for t in self._items.values() if t.involves(email)]
