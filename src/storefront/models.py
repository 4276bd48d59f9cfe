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

"""Request and response schemas for the storefront API.

Wire names are camelCase (`sessionId`, `guestToken`); Python attribute names
stay snake_case. Shopper-supplied line items are kept as raw mappings so that
the services can report a specific reason for each bad value instead of a
generic schema error.
"""

import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from storefront import db
from storefront import tracking
from storefront.carriers import Address
from storefront.carriers import Parcel
from storefront.enums import OrderStatus
from storefront.enums import ShippingCarrier


class ApiModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Identity(BaseModel):
  """The signed-in shopper, as asserted by the authenticating proxy."""

  user_id: str
  email: str
  name: Optional[str] = None


# --- Cart ---


class AddCartItemRequest(ApiModel):
  product_id: Any = None


class SetQuantityRequest(ApiModel):
  quantity: Any = None


class CartSyncRequest(ApiModel):
  items: List[Any] = Field(default_factory=list)


class CartLine(ApiModel):
  id: str
  name: str
  price_cents: int
  discount_percent: int = 0
  unit_price_cents: int
  quantity: int
  image_url: Optional[str] = None
  stock: int


class SyncError(ApiModel):
  product_id: str
  reason: str


class CartSyncResult(ApiModel):
  success: bool
  synced: int
  skipped: int
  errors: List[SyncError] = Field(default_factory=list)


# --- Checkout ---


class CheckoutRequest(ApiModel):
  email: Optional[Any] = None
  name: Optional[Any] = None
  items: Optional[List[Any]] = None


class CheckoutSessionResponse(ApiModel):
  session_id: str
  url: Optional[str] = None
  guest_token: Optional[str] = None


# --- Webhooks ---


class WebhookResult(ApiModel):
  event_id: str
  event_type: str
  duplicate: bool = False
  order_id: Optional[str] = None
  stock_inconsistency: bool = False


class WebhookAck(ApiModel):
  received: bool = True
  duplicate: Optional[bool] = None


# --- Shipping ---


class LabelResult(ApiModel):
  """Outcome of a label purchase attempt; failures are values, not raises."""

  success: bool
  tracking_number: Optional[str] = None
  carrier: Optional[ShippingCarrier] = None
  label_url: Optional[str] = None
  tracking_url: Optional[str] = None
  estimated_delivery: Optional[str] = None
  rate: Optional[Decimal] = None
  error: Optional[str] = None
  messages: List[str] = Field(default_factory=list)
  suggested_address: Optional[Address] = None


class ShipOrderRequest(ApiModel):
  preferred_carrier: Optional[str] = None
  parcel: Optional[Parcel] = None


class ManualTrackingRequest(ApiModel):
  tracking_number: str = Field(min_length=1, max_length=100)
  carrier: ShippingCarrier


class StatusUpdateRequest(ApiModel):
  status: OrderStatus


# --- Orders ---


class OrderItemView(ApiModel):
  product_id: str
  name: str
  unit_price_cents: int
  original_price_cents: int
  discount_percent: int
  quantity: int
  image_url: Optional[str] = None


def _item_views(order: db.Order) -> List[OrderItemView]:
  return [
      OrderItemView(
          product_id=item.product_id,
          name=item.name,
          unit_price_cents=item.unit_price_cents,
          original_price_cents=item.original_price_cents,
          discount_percent=item.discount_percent,
          quantity=item.quantity,
          image_url=item.image_url,
      )
      for item in order.items
  ]


class ShopperOrderView(ApiModel):
  """An order as shown in the shopper's order history."""

  id: str
  status: OrderStatus
  is_guest: bool
  customer_email: str
  customer_name: Optional[str] = None
  subtotal_cents: int
  shipping_cents: int
  total_cents: int
  shipping_address: Optional[Dict[str, Any]] = None
  tracking_number: Optional[str] = None
  carrier: Optional[ShippingCarrier] = None
  tracking_url: Optional[str] = None
  created_at: datetime.datetime
  updated_at: datetime.datetime
  items: List[OrderItemView] = Field(default_factory=list)

  @classmethod
  def from_order(cls, order: db.Order) -> "ShopperOrderView":
    return cls(
        id=order.id,
        status=order.status,
        is_guest=order.is_guest,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        subtotal_cents=order.subtotal_cents,
        shipping_cents=order.shipping_cents,
        total_cents=order.total_cents,
        shipping_address=order.shipping_address,
        tracking_number=order.tracking_number,
        carrier=order.shipping_carrier,
        tracking_url=tracking.tracking_url(
            order.shipping_carrier, order.tracking_number
        ),
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=_item_views(order),
    )


class OrderView(ApiModel):
  """Operator view of an order."""

  id: str
  status: OrderStatus
  user_id: Optional[str] = None
  is_guest: bool
  customer_email: str
  customer_name: Optional[str] = None
  subtotal_cents: int
  shipping_cents: int
  total_cents: int
  payment_session_id: Optional[str] = None
  payment_reference: Optional[str] = None
  shipping_address: Optional[Dict[str, Any]] = None
  tracking_number: Optional[str] = None
  shipping_carrier: Optional[ShippingCarrier] = None
  tracking_url: Optional[str] = None
  shipped_at: Optional[datetime.datetime] = None
  delivered_at: Optional[datetime.datetime] = None
  stock_committed: bool
  needs_reconciliation: bool
  created_at: datetime.datetime
  items: List[OrderItemView] = Field(default_factory=list)

  @classmethod
  def from_order(cls, order: db.Order) -> "OrderView":
    return cls(
        id=order.id,
        status=order.status,
        user_id=order.user_id,
        is_guest=order.is_guest,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        subtotal_cents=order.subtotal_cents,
        shipping_cents=order.shipping_cents,
        total_cents=order.total_cents,
        payment_session_id=order.payment_session_id,
        payment_reference=order.payment_reference,
        shipping_address=order.shipping_address,
        tracking_number=order.tracking_number,
        shipping_carrier=order.shipping_carrier,
        tracking_url=tracking.tracking_url(
            order.shipping_carrier, order.tracking_number
        ),
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        stock_committed=order.stock_committed,
        needs_reconciliation=order.needs_reconciliation,
        created_at=order.created_at,
        items=_item_views(order),
    )


class TrackingView(ApiModel):
  """What a shopper sees when following an order."""

  order_id: str
  status: OrderStatus
  tracking_number: Optional[str] = None
  carrier: Optional[ShippingCarrier] = None
  carrier_name: Optional[str] = None
  tracking_url: Optional[str] = None
  shipped_at: Optional[datetime.datetime] = None
  delivered_at: Optional[datetime.datetime] = None

  @classmethod
  def from_order(cls, order: db.Order) -> "TrackingView":
    return cls(
        order_id=order.id,
        status=order.status,
        tracking_number=order.tracking_number,
        carrier=order.shipping_carrier,
        carrier_name=(
            tracking.carrier_name(order.shipping_carrier)
            if order.shipping_carrier
            else None
        ),
        tracking_url=tracking.tracking_url(
            order.shipping_carrier, order.tracking_number
        ),
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
    )


class LinkGuestOrdersResult(ApiModel):
  linked: int
  order_ids: List[str] = Field(default_factory=list)
