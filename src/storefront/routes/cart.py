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

"""Account cart routes. All of them require a signed-in shopper."""

from typing import List

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path

from storefront import dependencies
from storefront.models import AddCartItemRequest
from storefront.models import CartLine
from storefront.models import CartSyncRequest
from storefront.models import CartSyncResult
from storefront.models import Identity
from storefront.models import SetQuantityRequest
from storefront.services.cart_service import CartService

router = APIRouter(
    prefix="/cart",
    dependencies=[Depends(dependencies.rate_limit("cart"))],
)


@router.get("", response_model=List[CartLine], operation_id="get_cart")
async def get_cart(
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> List[CartLine]:
  return await cart_service.get_cart(identity.user_id)


@router.post("", response_model=List[CartLine], operation_id="add_cart_item")
async def add_cart_item(
    body: AddCartItemRequest = Body(...),
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> List[CartLine]:
  """Add one unit of a product to the cart."""
  return await cart_service.add_item(identity.user_id, body.product_id)


@router.delete("", status_code=204, operation_id="clear_cart")
async def clear_cart(
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> None:
  await cart_service.clear_cart(identity.user_id)


@router.post(
    "/sync", response_model=CartSyncResult, operation_id="sync_guest_cart"
)
async def sync_guest_cart(
    body: CartSyncRequest = Body(...),
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> CartSyncResult:
  """Merge a browser cart into the account cart."""
  return await cart_service.merge_guest_cart(identity.user_id, body.items)


@router.patch(
    "/{productId}",
    response_model=List[CartLine],
    operation_id="set_cart_item_quantity",
)
async def set_cart_item_quantity(
    product_id: str = Path(..., alias="productId"),
    body: SetQuantityRequest = Body(...),
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> List[CartLine]:
  """Set a line's quantity; zero removes it."""
  return await cart_service.set_quantity(
      identity.user_id, product_id, body.quantity
  )


@router.delete(
    "/{productId}",
    response_model=List[CartLine],
    operation_id="remove_cart_item",
)
async def remove_cart_item(
    product_id: str = Path(..., alias="productId"),
    identity: Identity = Depends(dependencies.get_identity),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> List[CartLine]:
  return await cart_service.remove_item(identity.user_id, product_id)
