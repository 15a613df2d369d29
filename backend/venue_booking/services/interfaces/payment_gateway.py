"""
Payment gateway interface.

The gateway owns payment intents; this service only opens them and reads
their status back. Its answers are treated as untrusted and eventually
consistent: the coordinator re-validates amounts and never assumes a status
it has not just read.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

INTENT_PENDING = "pending"
INTENT_SUCCEEDED = "succeeded"
INTENT_FAILED = "failed"


@dataclass(frozen=True)
class PaymentIntent:
    reference: str
    client_secret: str


@dataclass(frozen=True)
class IntentStatus:
    status: str  # pending, succeeded, failed
    charged_amount: Decimal
    raw_status: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (INTENT_SUCCEEDED, INTENT_FAILED)


class PaymentGateway(ABC):
    """
    Implementations raise GatewayError; `retryable=True` marks transient
    transport failures (timeouts, connection resets, rate limits).
    """

    @abstractmethod
    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        pass

    @abstractmethod
    async def get_intent_status(self, reference: str) -> IntentStatus:
        pass

    @abstractmethod
    async def cancel_intent(self, reference: str) -> IntentStatus:
        """
        Cancel an open intent so the client secret can no longer be used to pay.
        Returns the status after the attempt: an intent that already succeeded
        cannot be cancelled and comes back as succeeded.
        """
