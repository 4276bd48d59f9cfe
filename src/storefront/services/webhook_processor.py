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

"""Payment webhook processing.

The payment provider delivers events at least once, possibly concurrently and
out of order. Each event is handled inside a single database transaction
that starts by inserting the event id into the processed-events ledger:

1. Insert `ProcessedWebhookEvent(event_id)`. A primary key conflict means
   another delivery of the same event already committed (or is committing);
   the delivery is acknowledged as a duplicate without touching anything.
2. Apply the event: order transition, payment details, stock decrement,
   cart cleanup.
3. Commit. If anything in step 2 raises, the whole transaction, ledger row
   included, is rolled back so the provider's retry starts from scratch.

A stock shortfall discovered after payment capture is not an error from the
provider's point of view: the money has been taken and retrying cannot fix
it. The order keeps its PROCESSING status, is flagged for manual
reconciliation, and the event is recorded as processed.
"""

import logging
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront import events
from storefront.enums import OrderStatus
from storefront.enums import TransitionActor
from storefront.exceptions import InsufficientStockError
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import ResourceNotFoundError
from storefront.models import WebhookResult
from storefront.payments import PaymentGateway
from storefront.services.order_state import OrderStateMachine
from storefront.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class WebhookProcessor:
  """Verifies, deduplicates and applies payment provider events."""

  def __init__(
      self,
      session: AsyncSession,
      payment_gateway: PaymentGateway,
      state_machine: Optional[OrderStateMachine] = None,
  ):
    self.session = session
    self.payment_gateway = payment_gateway
    self.state_machine = state_machine or OrderStateMachine()
    self.stock_ledger = StockLedger(session)

  async def handle_event(
      self, payload: bytes, signature: Optional[str]
  ) -> WebhookResult:
    """Entry point for a raw, signed webhook delivery.

    Args:
      payload: The request body exactly as received.
      signature: The provider's signature header.

    Returns:
      What happened to the event.

    Raises:
      SignatureVerificationError: If the signature does not verify. Nothing
        is read from or written to the database.
      InvalidRequestError: If the body is not a well-formed event.
    """
    self.payment_gateway.verify_signature(payload, signature)
    event = events.parse_event(payload)
    return await self.process(event)

  async def process(self, event: events.WebhookEvent) -> WebhookResult:
    """Applies an already verified event exactly once."""
    result = WebhookResult(event_id=event.id, event_type=event.type)

    self.session.add(
        db.ProcessedWebhookEvent(event_id=event.id, event_type=event.type)
    )
    try:
      await self.session.flush()
    except IntegrityError:
      await self.session.rollback()
      logger.info("Webhook event %s already processed, skipping", event.id)
      result.duplicate = True
      return result

    try:
      await self._dispatch(event, result)
      await self.session.commit()
    except Exception:
      await self.session.rollback()
      logger.exception(
          "Webhook event %s (%s) failed; it will be retried",
          event.id,
          event.type,
      )
      raise

    logger.info("Processed webhook event %s (%s)", event.id, event.type)
    return result

  async def _dispatch(
      self, event: events.WebhookEvent, result: WebhookResult
  ) -> None:
    if isinstance(event, events.CheckoutCompletedEvent):
      await self._on_checkout_completed(event.session, result)
    elif isinstance(event, events.AsyncPaymentSucceededEvent):
      await self._on_async_payment_succeeded(event.session, result)
    elif isinstance(
        event, (events.AsyncPaymentFailedEvent, events.SessionExpiredEvent)
    ):
      await self._on_payment_abandoned(event.session, result)
    else:
      logger.info("Ignoring webhook event %s of type %s", event.id, event.type)

  async def _load_order(
      self, checkout_session: events.CheckoutSession
  ) -> db.Order:
    # Only the metadata we wrote at session creation identifies the order.
    order_id = checkout_session.metadata.order_id
    if not order_id:
      raise InvalidRequestError("Missing order ID")
    order = await db.get_order(self.session, order_id)
    if not order:
      raise ResourceNotFoundError(f"Order {order_id} not found")
    return order

  async def _soft_link(
      self, order: db.Order, checkout_session: events.CheckoutSession
  ) -> None:
    """Attaches a guest order to the account owning the payer's email."""
    if not order.is_guest:
      return
    payer_email = checkout_session.payer_email or order.customer_email
    if not payer_email:
      return
    user = await db.get_user_by_email(self.session, payer_email)
    if user:
      order.user_id = user.id
      order.is_guest = False
      logger.info("Linked guest order %s to user %s", order.id, user.id)

  def _record_payment_details(
      self, order: db.Order, checkout_session: events.CheckoutSession
  ) -> None:
    if checkout_session.payment_intent:
      order.payment_reference = checkout_session.payment_intent
    shipping_address = checkout_session.shipping_address()
    if shipping_address:
      order.shipping_address = shipping_address
    if not order.payment_session_id:
      order.payment_session_id = checkout_session.id

  async def _on_checkout_completed(
      self, checkout_session: events.CheckoutSession, result: WebhookResult
  ) -> None:
    order = await self._load_order(checkout_session)
    result.order_id = order.id

    if order.status == OrderStatus.CANCELLED:
      logger.critical(
          "Payment completed for cancelled order %s (session %s); manual"
          " review required",
          order.id,
          checkout_session.id,
      )
      order.needs_reconciliation = True
      return

    await self._soft_link(order, checkout_session)
    self._record_payment_details(order, checkout_session)

    if checkout_session.awaiting_payment:
      logger.info(
          "Order %s checkout completed; waiting for delayed payment", order.id
      )
      return

    await self._confirm_payment(order, result)

  async def _on_async_payment_succeeded(
      self, checkout_session: events.CheckoutSession, result: WebhookResult
  ) -> None:
    order = await self._load_order(checkout_session)
    result.order_id = order.id
    await self._confirm_payment(order, result)

  async def _confirm_payment(
      self, order: db.Order, result: WebhookResult
  ) -> None:
    """Moves a paid order to PROCESSING and takes its stock."""
    order_id = order.id
    # Guest checkouts never read the account cart, even once soft-linked.
    account_cart_owner = order.user_id if order.guest_token is None else None
    moved = self.state_machine.advance(
        order, OrderStatus.PROCESSING, TransitionActor.PAYMENT_WEBHOOK
    )
    if order.status != OrderStatus.PROCESSING:
      return

    if not order.stock_committed and not order.needs_reconciliation:
      lines = [(item.product_id, item.quantity) for item in order.items]
      try:
        await self.stock_ledger.decrement_for_order(lines)
      except InsufficientStockError as e:
        logger.critical(
            "Stock decrement failed for paid order %s: %s. Payment was"
            " captured; manual reconciliation required.",
            order_id,
            e.message,
        )
        order.needs_reconciliation = True
        result.stock_inconsistency = True
      else:
        order.stock_committed = True

    if moved and account_cart_owner:
      await self.session.execute(
          delete(db.CartItem).where(db.CartItem.user_id == account_cart_owner)
      )

  async def _on_payment_abandoned(
      self, checkout_session: events.CheckoutSession, result: WebhookResult
  ) -> None:
    order = await self._load_order(checkout_session)
    result.order_id = order.id
    moved = self.state_machine.advance(
        order, OrderStatus.CANCELLED, TransitionActor.PAYMENT_WEBHOOK
    )
    if moved and order.stock_committed:
      lines = [(item.product_id, item.quantity) for item in order.items]
      await self.stock_ledger.release_for_order(lines)
      order.stock_committed = False
      logger.info("Released stock held by cancelled order %s", order.id)
