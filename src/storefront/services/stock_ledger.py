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

"""Stock ledger: the only code path that mutates `Product.stock`.

Availability is checked twice. Checkout runs an optimistic read-only check so
a shopper is not sent to pay for something visibly sold out; payment
confirmation runs the authoritative conditional decrement, which is what
actually prevents overselling when two buyers race for the last unit.
"""

import logging
from typing import Dict, Iterable, Sequence, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront.exceptions import InsufficientStockError

logger = logging.getLogger(__name__)


def check_available(
    products: Dict[str, db.Product], lines: Iterable[Tuple[str, int]]
) -> None:
  """Rejects the first line whose requested quantity exceeds live stock.

  Args:
    products: Product rows keyed by ID.
    lines: (product_id, quantity) pairs.

  Raises:
    InsufficientStockError: Naming the product and what is available.
  """
  for product_id, quantity in lines:
    product = products[product_id]
    if product.stock < quantity:
      raise InsufficientStockError(
          f"Insufficient stock for {product.name}. Only {product.stock}"
          " available.",
          product_id=product_id,
      )


class StockLedger:
  """Conditional, transactional stock mutations."""

  def __init__(self, session: AsyncSession):
    self.session = session

  async def decrement(self, product_id: str, quantity: int) -> bool:
    """Atomically decrements stock if at least `quantity` remains."""
    stmt = (
        update(db.Product)
        .where(db.Product.id == product_id)
        .where(db.Product.stock >= quantity)
        .values(stock=db.Product.stock - quantity)
    )
    result = await self.session.execute(stmt)
    return result.rowcount == 1

  async def decrement_for_order(
      self, lines: Sequence[Tuple[str, int]]
  ) -> None:
    """Decrements every line or none of them.

    The updates run inside a SAVEPOINT; the first line that cannot be
    covered rolls back the ones before it.

    Args:
      lines: (product_id, quantity) pairs of one order.

    Raises:
      InsufficientStockError: If any line cannot be covered. Stock is left
        exactly as it was before the call.
    """
    async with self.session.begin_nested():
      for product_id, quantity in lines:
        if not await self.decrement(product_id, quantity):
          raise InsufficientStockError(
              f"Insufficient stock to decrement {quantity} of {product_id}",
              product_id=product_id,
              status_code=409,
          )

  async def release_for_order(self, lines: Sequence[Tuple[str, int]]) -> None:
    """Returns previously decremented units to stock."""
    for product_id, quantity in lines:
      result = await self.session.execute(
          update(db.Product)
          .where(db.Product.id == product_id)
          .values(stock=db.Product.stock + quantity)
      )
      if result.rowcount != 1:
        logger.warning(
            "Cannot release %d of %s: product no longer exists",
            quantity,
            product_id,
        )
