from __future__ import annotations

from rest_framework import status
from rest_framework.response import Response

from hierarchy.exceptions import ActorNotFound, CapabilityError, HierarchyError
from ledger.exceptions import InsufficientBalance, InvalidLedgerTransition, LedgerError, LedgerLockTimeout
from pricing.exceptions import AssignmentNotPermitted, NoRateConfigured, PricingError, RateBelowFloor
from settlement.exceptions import SettlementConflict, SettlementError

DOMAIN_ERRORS = (HierarchyError, PricingError, LedgerError, SettlementError)

# Most specific first.
_STATUS_BY_ERROR = (
    (ActorNotFound, status.HTTP_404_NOT_FOUND),
    (CapabilityError, status.HTTP_403_FORBIDDEN),
    (AssignmentNotPermitted, status.HTTP_403_FORBIDDEN),
    (NoRateConfigured, status.HTTP_404_NOT_FOUND),
    (InsufficientBalance, status.HTTP_409_CONFLICT),
    (InvalidLedgerTransition, status.HTTP_409_CONFLICT),
    (LedgerLockTimeout, status.HTTP_409_CONFLICT),
    (SettlementConflict, status.HTTP_409_CONFLICT),
)


def domain_error_response(exc: Exception) -> Response:
    http_status = status.HTTP_400_BAD_REQUEST
    for error_class, mapped in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            http_status = mapped
            break

    body = {"detail": str(exc), "code": type(exc).__name__}
    if isinstance(exc, RateBelowFloor):
        body["actual"] = str(exc.actual)
        body["floor"] = str(exc.floor)
    return Response(body, status=http_status)
