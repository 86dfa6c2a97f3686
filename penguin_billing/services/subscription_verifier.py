"""
Subscription Verifier Protocol - boundary to the billing authority.

NO DICTIONARIES - Results use strongly typed models.
"""

from typing import Protocol

from penguin_billing.models.domain import VerifiedSubscription


class SubscriptionVerifier(Protocol):
    """
    Subscription verifier protocol.

    The Google Play client implements this; tests substitute doubles.
    """

    async def verify_subscription(
        self,
        package_name: str,
        purchase_token: str,
        expected_product_id: str | None = None,
    ) -> VerifiedSubscription:
        """
        Fetch the authoritative current state of a purchase token.

        Args:
            package_name: Android package name
            purchase_token: Store-issued purchase token
            expected_product_id: Product used to pick a line item, if known

        Returns:
            Normalized subscription state

        Raises:
            VerificationError: If the authority cannot confirm the token
        """
        ...
