"""Domain Gateway Interfaces - external services the core calls out to"""
from abc import ABC, abstractmethod
from typing import Dict, Optional

from domain.value_objects import PaymentIntent


class PaymentGateway(ABC):
    """Card payment provider

    Implementations raise UpstreamError when the provider is unreachable,
    times out, or answers with a server error.
    """

    @abstractmethod
    async def create_intent(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        description: Optional[str] = None
    ) -> PaymentIntent:
        """Open a payment intent for ``amount`` minor currency units"""
        pass

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> Optional[PaymentIntent]:
        """Fetch the provider's own record of an intent, None if unknown"""
        pass
