"""Domain errors raised by the ledger core.

Everything derives from ``ValueError`` so callers that only care about
"bad request vs. crash" can keep catching ``ValueError``. The HTTP edge maps
each class to a status code with ``http_status``.
"""


class LedgerError(ValueError):
    status_code = 400


class ValidationError(LedgerError):
    """Missing or inconsistent input. Nothing was written."""


class NotFound(LedgerError):
    """The record does not exist or belongs to another owner."""

    status_code = 404


class InsufficientFunds(LedgerError):
    def __init__(self, wallet_id: int, balance_cents: int, amount_cents: int) -> None:
        self.wallet_id = wallet_id
        self.balance_cents = balance_cents
        self.amount_cents = amount_cents
        super().__init__(
            f"Insufficient balance in wallet {wallet_id}: "
            f"{balance_cents} available, {amount_cents} required"
        )


class ConcurrentUpdate(LedgerError):
    """A wallet changed between read and write; the request may be retried."""

    status_code = 409


class PersistenceFailure(RuntimeError):
    status_code = 503


def http_status(exc: Exception) -> int:
    return int(getattr(exc, "status_code", 500))
