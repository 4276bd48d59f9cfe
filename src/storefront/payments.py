#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Payment collaborator boundary.

The storefront never captures money itself. It asks the payment provider for
a hosted checkout session and later verifies the provider's signed webhook
callbacks. `StripeGateway` is the production implementation; tests substitute
anything with the same two methods.
"""

import asyncio
import dataclasses
import logging
from typing import Dict, List, Optional, Protocol

import stripe

from storefront.exceptions import PaymentGatewayError
from storefront.exceptions import SignatureVerificationError
from storefront.pricing import PricedLine

logger = logging.getLogger(__name__)

CURRENCY = "usd"


@dataclasses.dataclass(frozen=True)
class PaymentSession:
  id: str
  url: Optional[str]


class PaymentGateway(Protocol):
  """What the checkout and webhook services need from a payment provider."""

  async def create_session(
      self,
      *,
      customer_email: str,
      lines: List[PricedLine],
      shipping_cents: int,
      metadata: Dict[str, str],
  ) -> PaymentSession:
    ...

  def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
    ...


class StripeGateway:
  """Hosted Stripe Checkout sessions and webhook signature checks."""

  def __init__(
      self,
      api_key: Optional[str],
      webhook_secret: Optional[str],
      app_url: str,
      tolerance_seconds: int = 300,
      timeout_seconds: float = 30.0,
      client: Optional[stripe.StripeClient] = None,
  ):
    self._client = client
    if self._client is None and api_key:
      self._client = stripe.StripeClient(
          api_key,
          http_client=stripe.RequestsClient(timeout=timeout_seconds),
      )
    self._webhook_secret = webhook_secret
    self._app_url = app_url.rstrip("/")
    self._tolerance_seconds = tolerance_seconds

  def _session_params(
      self,
      customer_email: str,
      lines: List[PricedLine],
      shipping_cents: int,
      metadata: Dict[str, str],
  ) -> dict:
    line_items = []
    for line in lines:
      product_data = {"name": line.name}
      if line.image_url:
        product_data["images"] = [line.image_url]
      line_items.append({
          "price_data": {
              "currency": CURRENCY,
              "product_data": product_data,
              "unit_amount": line.unit_price_cents,
          },
          "quantity": line.quantity,
      })

    return {
        "payment_method_types": ["card"],
        "line_items": line_items,
        "mode": "payment",
        "success_url": (
            f"{self._app_url}/order/success?session_id={{CHECKOUT_SESSION_ID}}"
        ),
        "cancel_url": f"{self._app_url}/checkout",
        "customer_email": customer_email,
        "metadata": metadata,
        "billing_address_collection": "required",
        "shipping_address_collection": {"allowed_countries": ["US"]},
        "shipping_options": [{
            "shipping_rate_data": {
                "type": "fixed_amount",
                "fixed_amount": {
                    "amount": shipping_cents,
                    "currency": CURRENCY,
                },
                "display_name": (
                    "Free Shipping" if shipping_cents == 0
                    else "Standard Shipping"
                ),
                "delivery_estimate": {
                    "minimum": {"unit": "business_day", "value": 5},
                    "maximum": {"unit": "business_day", "value": 7},
                },
            },
        }],
    }

  async def create_session(
      self,
      *,
      customer_email: str,
      lines: List[PricedLine],
      shipping_cents: int,
      metadata: Dict[str, str],
  ) -> PaymentSession:
    if self._client is None:
      raise PaymentGatewayError("Payment provider is not configured")

    params = self._session_params(
        customer_email, lines, shipping_cents, metadata
    )
    try:
      session = await asyncio.to_thread(
          self._client.checkout.sessions.create, params=params
      )
    except stripe.StripeError as e:
      logger.error(
          "Checkout session creation failed for order %s: %s",
          metadata.get("orderId"),
          e,
      )
      raise PaymentGatewayError("Failed to create checkout session") from e

    return PaymentSession(id=session.id, url=session.url)

  def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
    """Checks the `Stripe-Signature` header against the raw request body.

    Args:
      payload: The body exactly as received.
      signature: The signature header value.

    Raises:
      SignatureVerificationError: If the header is missing, stale, or does
        not match.
    """
    if not signature:
      raise SignatureVerificationError("No signature")
    if not self._webhook_secret:
      logger.error("Webhook secret is not configured")
      raise SignatureVerificationError("Webhook secret not configured")
    try:
      stripe.WebhookSignature.verify_header(
          payload.decode("utf-8"),
          signature,
          self._webhook_secret,
          self._tolerance_seconds,
      )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
      logger.warning("Webhook signature verification failed: %s", e)
      raise SignatureVerificationError() from e
