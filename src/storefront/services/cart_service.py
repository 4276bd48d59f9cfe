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

"""Account cart management and guest cart reconciliation.

A shopper browsing anonymously keeps a cart in their browser. On sign-in the
browser sends that cart once to `merge_guest_cart`, which folds it into the
account cart. Whether a merge should happen at all is decided client-side
(see `storefront.client.cart_sync`); this service only guarantees that a merge
it is asked to do is validated item by item, clamped to live stock, and
applied in a single transaction.
"""

import logging
from typing import Any, List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront import pricing
from storefront import validation
from storefront.exceptions import InsufficientStockError
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import ResourceNotFoundError
from storefront.models import CartLine
from storefront.models import CartSyncResult
from storefront.models import SyncError

logger = logging.getLogger(__name__)

MAX_SYNC_ITEMS = 50


class CartService:
  """Service for an authenticated shopper's server-side cart."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def get_cart(self, user_id: str) -> List[CartLine]:
    """Returns the cart with current prices and stock."""
    items = await db.get_cart_items(self.session, user_id)
    products = await db.get_products_by_ids(
        self.session, [item.product_id for item in items]
    )
    category_discounts = await db.get_category_discount_map(self.session)
    lines = []
    for item in items:
      product = products.get(item.product_id)
      if product is None:
        continue
      discount = pricing.effective_discount(
          product.discount_percent,
          category_discounts.get(product.category_id),
      )
      lines.append(
          CartLine(
              id=product.id,
              name=product.name,
              price_cents=product.price_cents,
              discount_percent=discount,
              unit_price_cents=pricing.discounted_price(
                  product.price_cents, discount
              ),
              quantity=item.quantity,
              image_url=product.image_url,
              stock=product.stock,
          )
      )
    return lines

  async def _require_product(self, product_id: Any) -> db.Product:
    if not validation.is_valid_product_id(product_id):
      raise InvalidRequestError(validation.INVALID_PRODUCT_ID)
    product = await db.get_product(self.session, product_id)
    if not product:
      raise ResourceNotFoundError("Product not found")
    return product

  async def add_item(self, user_id: str, product_id: Any) -> List[CartLine]:
    """Adds one unit of a product, refusing to exceed live stock."""
    product = await self._require_product(product_id)
    if product.stock == 0:
      raise InsufficientStockError(
          "Product out of stock", product_id=product.id
      )

    item = await db.get_cart_item(self.session, user_id, product.id)
    if item:
      if item.quantity + 1 > product.stock:
        raise InsufficientStockError(
            "Cannot add more items - stock limit reached",
            product_id=product.id,
        )
      item.quantity += 1
    else:
      self.session.add(
          db.CartItem(user_id=user_id, product_id=product.id, quantity=1)
      )
    await self.session.commit()
    return await self.get_cart(user_id)

  async def set_quantity(
      self, user_id: str, product_id: Any, quantity: Any
  ) -> List[CartLine]:
    """Sets a line's quantity; zero removes the line.

    Unlike a merge, an explicit quantity above live stock is an error rather
    than being clamped, because the shopper asked for that exact number.
    """
    product = await self._require_product(product_id)
    if not validation.is_integer(quantity):
      raise InvalidRequestError(validation.QUANTITY_NOT_INTEGER)
    if quantity < 0:
      raise InvalidRequestError("Quantity cannot be negative")
    if quantity == 0:
      return await self.remove_item(user_id, product.id)
    if quantity > validation.MAX_QUANTITY_PER_ITEM:
      raise InvalidRequestError(validation.QUANTITY_TOO_LARGE)
    if quantity > product.stock:
      raise InsufficientStockError(
          f"Only {product.stock} available in stock", product_id=product.id
      )

    item = await db.get_cart_item(self.session, user_id, product.id)
    if not item:
      raise ResourceNotFoundError("Item not in cart")
    item.quantity = quantity
    await self.session.commit()
    return await self.get_cart(user_id)

  async def remove_item(self, user_id: str, product_id: Any) -> List[CartLine]:
    """Removes a line; removing an absent line is not an error."""
    if not validation.is_valid_product_id(product_id):
      raise InvalidRequestError(validation.INVALID_PRODUCT_ID)
    await self.session.execute(
        delete(db.CartItem).where(
            db.CartItem.user_id == user_id,
            db.CartItem.product_id == product_id,
        )
    )
    await self.session.commit()
    return await self.get_cart(user_id)

  async def clear_cart(self, user_id: str) -> None:
    await self.session.execute(
        delete(db.CartItem).where(db.CartItem.user_id == user_id)
    )
    await self.session.commit()

  async def merge_guest_cart(
      self, user_id: str, items: List[Any]
  ) -> CartSyncResult:
    """Folds a browser cart into the account cart.

    Args:
      user_id: The account receiving the items.
      items: Raw `{id, quantity}` entries from the browser; anything that is
        not such a mapping is skipped as an invalid product.

    Returns:
      Counts of synced and skipped items with a reason per skipped item.

    Raises:
      InvalidRequestError: If the batch is empty, too large, or contains no
        item that passes validation.
    """
    if not isinstance(items, list) or not items:
      raise InvalidRequestError("No items to sync")
    if len(items) > MAX_SYNC_ITEMS:
      raise InvalidRequestError(
          f"Cannot sync more than {MAX_SYNC_ITEMS} items at once"
      )

    errors: List[SyncError] = []
    valid: List[tuple] = []
    for item in items:
      item = item if isinstance(item, dict) else {}
      product_id = item.get("id")
      reason = validation.item_error(product_id, item.get("quantity"))
      if reason:
        errors.append(
            SyncError(
                product_id=str(product_id if product_id else "unknown"),
                reason=reason,
            )
        )
        continue
      valid.append((product_id, item["quantity"]))

    if not valid:
      reasons = "; ".join(f"{e.product_id}: {e.reason}" for e in errors)
      raise InvalidRequestError(f"No valid items to sync ({reasons})")

    products = await db.get_products_by_ids(
        self.session, [product_id for product_id, _ in valid]
    )
    existing = {
        item.product_id: item
        for item in await db.get_cart_items(self.session, user_id)
    }

    synced = 0
    for product_id, quantity in valid:
      product = products.get(product_id)
      if product is None:
        errors.append(
            SyncError(product_id=product_id, reason="Product not found")
        )
        continue
      if product.stock <= 0:
        errors.append(
            SyncError(product_id=product_id, reason="Product out of stock")
        )
        continue

      row = existing.get(product_id)
      if row:
        row.quantity = min(row.quantity + quantity, product.stock)
      else:
        row = db.CartItem(
            user_id=user_id,
            product_id=product_id,
            quantity=min(quantity, product.stock),
        )
        self.session.add(row)
        existing[product_id] = row
      synced += 1

    await self.session.commit()
    logger.info(
        "Merged guest cart for %s: %d synced, %d skipped",
        user_id,
        synced,
        len(errors),
    )
    return CartSyncResult(
        success=True, synced=synced, skipped=len(errors), errors=errors
    )
