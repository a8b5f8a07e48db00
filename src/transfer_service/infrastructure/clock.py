import secrets
from datetime import UTC, datetime


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class SecretsRandomSource:
    """Randomness backed by the OS CSPRNG via ``secrets``."""

    def digits(self, length: int) -> str:
        return str(secrets.randbelow(10**length)).zfill(length)

    def token_hex(self, nbytes: int) -> str:
        return secrets.token_hex(nbytes)
