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

"""Shopper-facing order routes."""

from typing import List, Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Path
from fastapi import Query

from storefront import dependencies
from storefront.models import Identity
from storefront.models import LinkGuestOrdersResult
from storefront.models import ShopperOrderView
from storefront.models import TrackingView
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders")


@router.get(
    "",
    response_model=List[ShopperOrderView],
    operation_id="list_orders",
    dependencies=[Depends(dependencies.rate_limit("api"))],
)
async def list_orders(
    identity: Identity = Depends(dependencies.get_identity),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> List[ShopperOrderView]:
  """Order history of the signed-in shopper, newest first."""
  return await order_service.list_orders_for_user(identity)


@router.get(
    "/lookup",
    response_model=ShopperOrderView,
    operation_id="lookup_guest_order",
    dependencies=[Depends(dependencies.rate_limit("guest_lookup"))],
)
async def lookup_guest_order(
    guest_token: Optional[str] = Query(None, alias="guestToken"),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> ShopperOrderView:
  """Full order details for the holder of a guest token."""
  return await order_service.get_guest_order(guest_token)


@router.get(
    "/{id}/tracking",
    response_model=TrackingView,
    operation_id="get_order_tracking",
    dependencies=[
        Depends(dependencies.rate_limit("api", guest_bucket="guest_lookup"))
    ],
)
async def get_order_tracking(
    order_id: str = Path(..., alias="id"),
    email: Optional[str] = Query(None),
    guest_token: Optional[str] = Query(None, alias="guestToken"),
    identity: Optional[Identity] = Depends(
        dependencies.get_optional_identity
    ),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> TrackingView:
  """Track an order by session, or by email plus guest token."""
  return await order_service.get_tracking(
      order_id, identity=identity, email=email, guest_token=guest_token
  )


@router.post(
    "/link-guest",
    response_model=LinkGuestOrdersResult,
    operation_id="link_guest_orders",
    dependencies=[Depends(dependencies.rate_limit("api"))],
)
async def link_guest_orders(
    identity: Identity = Depends(dependencies.get_identity),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> LinkGuestOrdersResult:
  """Attach earlier guest orders to the signed-in account."""
  return await order_service.link_guest_orders(identity)
