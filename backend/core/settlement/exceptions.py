class SettlementError(RuntimeError):
    """Base error for settlement orchestration failures."""


class SettlementConflict(SettlementError):
    """Raised when a reference is reused with different parameters."""
