"""
Discount code validator.

Asks the server for a decision and caches at most one applied decision.
Eligibility rules are never evaluated here.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional, Union

from .client import StorefrontClient
from .errors import AuthenticationError, StorefrontError
from .notices import SIGN_IN_ACTION, NoticeBoard
from .session import IdentityProvider
from .totals import calculate_discount
from .types import DiscountDecision

logger = logging.getLogger("storefront-client-discounts")

EMPTY_CODE = "Please enter a discount code"
SIGN_IN_REQUIRED = "Please sign in to use discount codes"
VALIDATION_FAILED = "Failed to validate discount code"
INVALID_CODE = "Invalid discount code"
IN_PROGRESS = "A discount code is already being validated"


def _rejected(error: str) -> DiscountDecision:
    return DiscountDecision(valid=False, error=error)


class DiscountValidator:
    """Validates codes against the server and holds the applied one."""

    def __init__(
        self,
        client: StorefrontClient,
        identity: IdentityProvider,
        notices: Optional[NoticeBoard] = None,
    ) -> None:
        self._client = client
        self._identity = identity
        self._notices = notices or NoticeBoard()
        self._lock = asyncio.Lock()
        self.applied: Optional[DiscountDecision] = None

    @property
    def is_validating(self) -> bool:
        return self._lock.locked()

    async def validate_code(self, code: str, order_total: Union[Decimal, float, str]) -> DiscountDecision:
        """Validate ``code`` for an order of ``order_total``.

        A valid decision replaces the applied one. An invalid decision
        leaves the applied one as it was.
        """
        if not code or not code.strip():
            return _rejected(EMPTY_CODE)
        if self._lock.locked():
            return _rejected(IN_PROGRESS)

        async with self._lock:
            user = await self._identity.get_current_user()
            if user is None:
                self._notices.error(SIGN_IN_REQUIRED, action=SIGN_IN_ACTION)
                return _rejected(SIGN_IN_REQUIRED)

            try:
                data = await self._client.validate_discount_code(
                    code.strip().upper(), Decimal(str(order_total)), user.id,
                )
                decision = DiscountDecision.model_validate(data)
            except AuthenticationError:
                self._notices.error(SIGN_IN_REQUIRED, action=SIGN_IN_ACTION)
                return _rejected(SIGN_IN_REQUIRED)
            except (StorefrontError, ValueError) as e:
                logger.error("Discount validation failed: %s", e)
                self._notices.error(VALIDATION_FAILED)
                return _rejected(VALIDATION_FAILED)

            if not decision.valid:
                decision.error = decision.error or INVALID_CODE
                self._notices.error(decision.error)
                return decision

            self.applied = decision
            self._notices.success(f"Discount applied: {decision.label}")
            return decision

    def remove_discount(self, notify: bool = True) -> None:
        if self.applied is None:
            return
        self.applied = None
        if notify:
            self._notices.info("Discount removed")

    def calculate_discounted_total(self, subtotal: Union[Decimal, float, str]) -> tuple[Decimal, Decimal]:
        """``(discount_amount, final_total)`` under the applied decision."""
        return calculate_discount(subtotal, self.applied)

    async def settled(self) -> None:
        """Wait for any in-flight validation to finish."""
        async with self._lock:
            pass
