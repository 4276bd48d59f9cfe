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

"""Order lookups for shoppers and lifecycle actions for operators."""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront import validation
from storefront.carriers import Address
from storefront.carriers import Parcel
from storefront.enums import OrderStatus
from storefront.enums import ShippingCarrier
from storefront.enums import TransitionActor
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import InvalidTransitionError
from storefront.exceptions import ResourceNotFoundError
from storefront.exceptions import UnauthorizedError
from storefront.models import Identity
from storefront.models import LabelResult
from storefront.models import LinkGuestOrdersResult
from storefront.models import OrderView
from storefront.models import ShopperOrderView
from storefront.models import TrackingView
from storefront.services.order_state import OrderStateMachine
from storefront.services.shipping_broker import ShippingLabelBroker
from storefront.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class OrderService:
  """Service for reading orders and applying operator actions."""

  def __init__(
      self,
      session: AsyncSession,
      label_broker: Optional[ShippingLabelBroker] = None,
      state_machine: Optional[OrderStateMachine] = None,
  ):
    self.session = session
    self.label_broker = label_broker
    self.state_machine = state_machine or OrderStateMachine()

  async def _require_order(self, order_id: str) -> db.Order:
    order = await db.get_order(self.session, order_id)
    if not order:
      raise ResourceNotFoundError("Order not found")
    return order

  async def get_order(self, order_id: str) -> OrderView:
    return OrderView.from_order(await self._require_order(order_id))

  async def get_tracking(
      self,
      order_id: str,
      identity: Optional[Identity] = None,
      email: Optional[str] = None,
      guest_token: Optional[str] = None,
  ) -> TrackingView:
    """Returns tracking details to the order's owner.

    A signed-in shopper sees orders attached to their account. Anyone else
    must present the exact (email, guest token) pair issued at checkout.

    Raises:
      UnauthorizedError: If neither credential is present.
      ResourceNotFoundError: If no order matches the credential.
    """
    order = None
    if identity:
      candidate = await db.get_order(self.session, order_id)
      if candidate and candidate.user_id == identity.user_id:
        order = candidate
    elif email and guest_token:
      order = await db.get_guest_order(
          self.session, order_id, email, guest_token
      )
    else:
      raise UnauthorizedError()

    if not order:
      raise ResourceNotFoundError("Order not found")
    return TrackingView.from_order(order)

  async def list_orders_for_user(
      self, identity: Identity
  ) -> List[ShopperOrderView]:
    """Returns the account's order history, newest first."""
    result = await self.session.execute(
        select(db.Order)
        .where(db.Order.user_id == identity.user_id)
        .order_by(db.Order.created_at.desc(), db.Order.id)
    )
    return [ShopperOrderView.from_order(o) for o in result.scalars().all()]

  async def get_guest_order(
      self, guest_token: Optional[str]
  ) -> ShopperOrderView:
    """Looks up a guest order, with its items, by the token issued for it."""
    if not validation.is_valid_guest_token(guest_token):
      raise InvalidRequestError("Invalid guest token")
    order = await db.get_order_by_guest_token(self.session, guest_token)
    if not order:
      raise ResourceNotFoundError("Order not found")
    return ShopperOrderView.from_order(order)

  async def list_orders(
      self,
      status: Optional[OrderStatus] = None,
      email: Optional[str] = None,
      needs_reconciliation: Optional[bool] = None,
      limit: int = 50,
      offset: int = 0,
  ) -> List[OrderView]:
    """Lists orders for operators, newest first, with optional filters."""
    query = select(db.Order)
    if status is not None:
      query = query.where(db.Order.status == status)
    if email:
      query = query.where(
          func.lower(db.Order.customer_email) == email.strip().lower()
      )
    if needs_reconciliation is not None:
      query = query.where(
          db.Order.needs_reconciliation.is_(needs_reconciliation)
      )
    query = (
        query.order_by(db.Order.created_at.desc(), db.Order.id)
        .limit(limit)
        .offset(offset)
    )
    result = await self.session.execute(query)
    return [OrderView.from_order(o) for o in result.scalars().all()]

  async def link_guest_orders(
      self, identity: Identity
  ) -> LinkGuestOrdersResult:
    """Attaches every unlinked guest order placed with the account's email."""
    result = await self.session.execute(
        select(db.Order).where(
            db.Order.is_guest.is_(True),
            db.Order.user_id.is_(None),
            func.lower(db.Order.customer_email) == identity.email.lower(),
        )
    )
    orders = list(result.scalars().all())
    for order in orders:
      order.user_id = identity.user_id
      order.is_guest = False
    await self.session.commit()
    if orders:
      logger.info(
          "Linked %d guest order(s) to user %s", len(orders), identity.user_id
      )
    return LinkGuestOrdersResult(
        linked=len(orders), order_ids=[order.id for order in orders]
    )

  async def ship_order(
      self,
      order_id: str,
      preferred_carrier: Optional[str] = None,
      parcel: Optional[Parcel] = None,
  ) -> LabelResult:
    """Buys a label for a paid order and marks it shipped.

    Returns:
      The broker's result. The order is only changed when it succeeded.

    Raises:
      InvalidTransitionError: If the order is not PROCESSING.
      InvalidRequestError: If it is already labelled or has no address.
    """
    if self.label_broker is None:
      raise InvalidRequestError("Label purchasing is not configured")

    order = await self._require_order(order_id)
    if order.status != OrderStatus.PROCESSING:
      raise InvalidTransitionError(
          f"Cannot ship an order with status {order.status.value}"
      )
    if order.tracking_number:
      raise InvalidRequestError("Order already has a tracking number")
    if not order.shipping_address:
      raise InvalidRequestError("Order has no shipping address")

    address = Address.from_stored(order.shipping_address)
    address.name = address.name or order.customer_name or order.customer_email
    address.email = order.customer_email

    label = await self.label_broker.create_label(
        address, parcel=parcel, preferred_carrier=preferred_carrier
    )
    if not label.success:
      logger.warning(
          "Could not create label for order %s: %s", order.id, label.error
      )
      return label

    order.tracking_number = label.tracking_number
    order.shipping_carrier = label.carrier
    self.state_machine.advance(
        order, OrderStatus.SHIPPED, TransitionActor.OPERATOR
    )
    await self.session.commit()
    return label

  async def record_tracking(
      self, order_id: str, tracking_number: str, carrier: ShippingCarrier
  ) -> OrderView:
    """Records tracking for a label bought outside the broker.

    A SHIPPED order may have its tracking corrected; a PROCESSING order is
    moved to SHIPPED.
    """
    order = await self._require_order(order_id)
    if order.status != OrderStatus.SHIPPED:
      self.state_machine.advance(
          order, OrderStatus.SHIPPED, TransitionActor.OPERATOR
      )
    order.tracking_number = tracking_number.strip()
    order.shipping_carrier = carrier
    await self.session.commit()
    return OrderView.from_order(order)

  async def mark_delivered(self, order_id: str) -> OrderView:
    order = await self._require_order(order_id)
    self.state_machine.advance(
        order, OrderStatus.DELIVERED, TransitionActor.OPERATOR
    )
    await self.session.commit()
    return OrderView.from_order(order)

  async def set_status(self, order_id: str, status: OrderStatus) -> OrderView:
    """Applies an operator status change, e.g. a cancellation or refund."""
    order = await self._require_order(order_id)
    moved = self.state_machine.advance(order, status, TransitionActor.OPERATOR)
    if moved and status == OrderStatus.CANCELLED and order.stock_committed:
      await StockLedger(self.session).release_for_order(
          [(item.product_id, item.quantity) for item in order.items]
      )
      order.stock_committed = False
    await self.session.commit()
    return OrderView.from_order(order)
