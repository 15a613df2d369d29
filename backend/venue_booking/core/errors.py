"""
Reservation error taxonomy.

Every error is an HTTPException so services can raise it directly and the
transport renders it as-is. `detail` always has the shape
{"code": ..., "message": ..., **context} so clients can branch on `code`.
"""

from typing import Any, Optional

from fastapi import HTTPException, status


class ReservationError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "reservation_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": message, **context},
        )

    def __str__(self) -> str:
        return self.message


class ValidationError(ReservationError):
    """Bad interval or request shape. Nothing was mutated."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class NotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Forbidden(ReservationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class InvalidState(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class SlotUnavailable(ReservationError):
    """A confirmed booking already claims one of the requested resources."""

    status_code = status.HTTP_409_CONFLICT
    code = "slot_unavailable"

    def __init__(self, message: str, axis: Optional[str] = None, resource_id: Optional[int] = None, **context: Any):
        self.axis = axis
        self.resource_id = resource_id
        super().__init__(message, axis=axis, resource_id=resource_id, **context)


class PaidButUnbookable(SlotUnavailable):
    """
    The gateway charged the customer but no booking could be written: the slot
    was taken first, or the record had already been closed. Money has moved and no reservation exists, so this must
    reach support for a refund.
    """

    code = "paid_but_unbookable"


class AmountMismatch(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "amount_mismatch"


class GatewayError(ReservationError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_error"

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        gateway_status: Optional[str] = None,
        **context: Any,
    ):
        self.retryable = retryable
        self.gateway_status = gateway_status
        super().__init__(message, retryable=retryable, gateway_status=gateway_status, **context)


class ResourceBusy(ReservationError):
    """Could not acquire the resource locks in time. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "resource_busy"
