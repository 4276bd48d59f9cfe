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

"""Discount and order total arithmetic.

All amounts are integer cents. A product's effective discount is the larger
of its own discount and the best active sale covering its category; the two
are never added together.
"""

import dataclasses
from decimal import Decimal
from decimal import ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from storefront import db


@dataclasses.dataclass(frozen=True)
class PricedLine:
  """A cart line with its price and discount resolved."""

  product_id: str
  name: str
  quantity: int
  original_price_cents: int
  discount_percent: int
  unit_price_cents: int
  image_url: Optional[str] = None

  @property
  def line_total_cents(self) -> int:
    return self.unit_price_cents * self.quantity


def _usable(discount: Optional[int]) -> int:
  if discount is None or discount <= 0 or discount > 100:
    return 0
  return discount


def effective_discount(
    product_discount: Optional[int], category_discount: Optional[int]
) -> int:
  """Returns the discount percentage that applies to a product."""
  return max(_usable(product_discount), _usable(category_discount))


def discounted_price(price_cents: int, discount_percent: int) -> int:
  """Applies a percentage discount, rounding half-cents up."""
  discount_percent = _usable(discount_percent)
  if not discount_percent:
    return price_cents
  amount = Decimal(price_cents) * (100 - discount_percent) / 100
  return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def price_lines(
    products: Dict[str, db.Product],
    lines: Iterable[Tuple[str, int]],
    category_discounts: Dict[str, int],
) -> List[PricedLine]:
  """Prices each (product_id, quantity) line against live product rows.

  Args:
    products: Product rows keyed by ID; every line's product must be present.
    lines: The (product_id, quantity) pairs to price.
    category_discounts: Active sale discount per category ID.

  Returns:
    The priced lines, in input order.
  """
  priced = []
  for product_id, quantity in lines:
    product = products[product_id]
    discount = effective_discount(
        product.discount_percent,
        category_discounts.get(product.category_id),
    )
    priced.append(
        PricedLine(
            product_id=product.id,
            name=product.name,
            quantity=quantity,
            original_price_cents=product.price_cents,
            discount_percent=discount,
            unit_price_cents=discounted_price(product.price_cents, discount),
            image_url=product.image_url,
        )
    )
  return priced


def subtotal(lines: Iterable[PricedLine]) -> int:
  return sum(line.line_total_cents for line in lines)


def shipping_cost(
    subtotal_cents: int, free_threshold_cents: int, flat_rate_cents: int
) -> int:
  """Flat-rate shipping, free at or above the threshold."""
  if subtotal_cents >= free_threshold_cents:
    return 0
  return flat_rate_cents
