class LedgerError(RuntimeError):
    """Base error for wallet ledger failures."""


class InsufficientBalance(LedgerError):
    """Raised when a debit or hold exceeds the available balance."""

    def __init__(self, account_id, requested, available):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Account {account_id} has {available} available; {requested} requested."
        )


class InvalidLedgerTransition(LedgerError):
    """Raised when a payout hold is released from a state other than CREATED."""


class LedgerLockTimeout(LedgerError):
    """Raised when an account row lock could not be acquired in time."""
