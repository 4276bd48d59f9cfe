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

"""Checkout service: turns a cart into a priced order and a payment session.

Key responsibilities include:
- Validating guest contact details and line items.
- Re-reading every product server-side; client prices are never used.
- Rejecting the whole checkout if any line is under-stocked. This is the
  optimistic half of the stock check; the authoritative decrement happens
  when payment is confirmed.
- Resolving each line's effective discount and baking the discounted unit
  price into immutable order item snapshots.
- Requesting a hosted payment session whose metadata carries the order id,
  guest flag and guest token back to the webhook.
"""

import collections
import logging
import secrets
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront import pricing
from storefront import validation
from storefront.config import Settings
from storefront.exceptions import InvalidRequestError
from storefront.models import CheckoutRequest
from storefront.models import CheckoutSessionResponse
from storefront.models import Identity
from storefront.payments import PaymentGateway
from storefront.services import stock_ledger

logger = logging.getLogger(__name__)


def _combine(lines: List[Tuple[str, int]]) -> List[Tuple[str, int]]:
  """Sums quantities of repeated product IDs, keeping first-seen order."""
  combined = collections.OrderedDict()
  for product_id, quantity in lines:
    combined[product_id] = combined.get(product_id, 0) + quantity
  return list(combined.items())


class CheckoutService:
  """Service for creating orders and their payment sessions."""

  def __init__(
      self,
      session: AsyncSession,
      payment_gateway: PaymentGateway,
      settings: Settings,
  ):
    self.session = session
    self.payment_gateway = payment_gateway
    self.settings = settings

  async def _cart_lines(self, user_id: str) -> List[Tuple[str, int]]:
    items = await db.get_cart_items(self.session, user_id)
    return [(item.product_id, item.quantity) for item in items]

  async def create_checkout(
      self,
      request: CheckoutRequest,
      identity: Optional[Identity] = None,
  ) -> CheckoutSessionResponse:
    """Creates a PENDING order and a payment session for it.

    Args:
      request: Guest contact details and items. Items are ignored for a
        signed-in shopper, whose stored cart is used instead.
      identity: The signed-in shopper, or None for guest checkout.

    Returns:
      The payment session id and redirect URL, plus the guest token on the
      guest path.

    Raises:
      InvalidRequestError: Bad contact details, bad items, empty cart, or an
        unknown product.
      InsufficientStockError: If any line exceeds live stock.
      PaymentGatewayError: If the payment session cannot be created. The
        order row is left PENDING and is treated as abandoned.
    """
    is_guest = identity is None
    if is_guest:
      email = request.email.strip() if isinstance(request.email, str) else None
      if not validation.is_valid_email(email):
        raise InvalidRequestError("A valid email is required")
      name = validation.clean_guest_name(request.name)
      lines = validation.validate_guest_items(request.items)
    else:
      email = identity.email
      name = identity.name
      lines = await self._cart_lines(identity.user_id)
      if not lines:
        raise InvalidRequestError("Cart is empty")

    lines = _combine(lines)
    products = await db.get_products_by_ids(
        self.session, [product_id for product_id, _ in lines]
    )
    for product_id, _ in lines:
      if product_id not in products:
        raise InvalidRequestError(f"Product {product_id} not found")

    stock_ledger.check_available(products, lines)

    category_discounts = await db.get_category_discount_map(self.session)
    priced = pricing.price_lines(products, lines, category_discounts)
    subtotal_cents = pricing.subtotal(priced)
    shipping_cents = pricing.shipping_cost(
        subtotal_cents,
        self.settings.free_shipping_threshold_cents,
        self.settings.flat_rate_shipping_cents,
    )

    order = db.Order(
        user_id=None if is_guest else identity.user_id,
        is_guest=is_guest,
        guest_token=secrets.token_urlsafe(32) if is_guest else None,
        customer_email=email,
        customer_name=name,
        subtotal_cents=subtotal_cents,
        shipping_cents=shipping_cents,
        total_cents=subtotal_cents,
        items=[
            db.OrderItem(
                product_id=line.product_id,
                name=line.name,
                unit_price_cents=line.unit_price_cents,
                original_price_cents=line.original_price_cents,
                discount_percent=line.discount_percent,
                quantity=line.quantity,
                image_url=line.image_url,
            )
            for line in priced
        ],
    )
    self.session.add(order)
    await self.session.commit()
    logger.info(
        "Created %s order %s for %d cents",
        "guest" if is_guest else "account",
        order.id,
        order.total_cents,
    )

    payment_session = await self.payment_gateway.create_session(
        customer_email=email,
        lines=priced,
        shipping_cents=shipping_cents,
        metadata={
            "orderId": order.id,
            "userId": "" if is_guest else identity.user_id,
            "isGuest": "true" if is_guest else "false",
            "guestToken": order.guest_token or "",
        },
    )

    order.payment_session_id = payment_session.id
    await self.session.commit()

    return CheckoutSessionResponse(
        session_id=payment_session.id,
        url=payment_session.url,
        guest_token=order.guest_token if is_guest else None,
    )
