from dataclasses import replace
from decimal import Decimal

from transfer_service.domain.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    OptimisticLockError,
)
from transfer_service.domain.models import Account
from transfer_service.infrastructure.repositories.memory import InMemoryRepository


class AccountRepository(InMemoryRepository[str, Account]):
    async def add(self, account: Account) -> None:
        if account.email in self._items:
            raise AccountAlreadyExistsError(account.email)
        await self.set(account.email, account)

    async def transfer(self, sender: Account, recipient: Account | None, amount: Decimal) -> Account:
        """Debit sender and credit recipient in one step.

        Both versions are checked before either balance changes. A missing
        recipient means only the debit is applied.
        """
        accounts = [sender] if recipient is None else [sender, recipient]
        for snapshot in accounts:
            current = self._items.get(snapshot.email)
            if current is None:
                raise AccountNotFoundError(snapshot.email)
            if current.version != snapshot.version:
                raise OptimisticLockError("Account", snapshot.email)

        debited = replace(sender, balance=sender.balance - amount, version=sender.version + 1)
        self._items[sender.email] = debited
        if recipient is not None:
            self._items[recipient.email] = replace(
                recipient, balance=recipient.balance + amount, version=recipient.version + 1
            )
        return replace(debited)

    async def mark_verified(self, email: str) -> Account:
        current = self._items.get(email)
        if current is None:
            raise AccountNotFoundError(email)
        updated = replace(current, verified=True, version=current.version + 1)
        self._items[email] = updated
        return replace(updated)
