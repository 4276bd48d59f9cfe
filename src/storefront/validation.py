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

"""Input validation for shopper-supplied identifiers, quantities and names.

Values arriving from a shopper's browser are never trusted. The helpers here
return a specific reason for rejection instead of coercing a bad value into a
plausible one.
"""

from html.parser import HTMLParser
import re
from typing import Any, List, Optional, Tuple

from storefront.exceptions import InvalidRequestError

MAX_QUANTITY_PER_ITEM = 1000
MAX_PRODUCT_ID_LENGTH = 100
MAX_EMAIL_LENGTH = 254
MAX_NAME_LENGTH = 100
MAX_GUEST_ITEMS = 100

_PRODUCT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

INVALID_PRODUCT_ID = "Invalid product ID"
QUANTITY_NOT_INTEGER = "Quantity must be a valid integer"
QUANTITY_TOO_SMALL = "Quantity must be at least 1"
QUANTITY_TOO_LARGE = f"Quantity cannot exceed {MAX_QUANTITY_PER_ITEM}"


class _TextExtractor(HTMLParser):
  """Collects character data, discarding tags, attributes and scripts."""

  def __init__(self):
    super().__init__(convert_charrefs=True)
    self._chunks: List[str] = []
    self._skip_depth = 0

  def handle_starttag(self, tag, attrs):
    if tag in ("script", "style"):
      self._skip_depth += 1

  def handle_endtag(self, tag):
    if tag in ("script", "style") and self._skip_depth:
      self._skip_depth -= 1

  def handle_data(self, data):
    if not self._skip_depth:
      self._chunks.append(data)

  def text(self) -> str:
    return "".join(self._chunks)


def strip_html(text: str) -> str:
  """Returns the text content of `text` with all markup removed."""
  parser = _TextExtractor()
  parser.feed(text)
  parser.close()
  return parser.text()


def is_valid_product_id(product_id: Any) -> bool:
  return (
      isinstance(product_id, str)
      and 0 < len(product_id) <= MAX_PRODUCT_ID_LENGTH
      and _PRODUCT_ID_RE.match(product_id) is not None
  )


def is_valid_guest_token(token: Any) -> bool:
  """Guest tokens are URL-safe base64, like product IDs."""
  return is_valid_product_id(token)


def is_integer(value: Any) -> bool:
  """True for ints; booleans and integral floats are not quantities."""
  return isinstance(value, int) and not isinstance(value, bool)


def quantity_error(quantity: Any) -> Optional[str]:
  """Returns the reason `quantity` is not a valid line quantity, or None."""
  if not is_integer(quantity):
    return QUANTITY_NOT_INTEGER
  if quantity < 1:
    return QUANTITY_TOO_SMALL
  if quantity > MAX_QUANTITY_PER_ITEM:
    return QUANTITY_TOO_LARGE
  return None


def item_error(product_id: Any, quantity: Any) -> Optional[str]:
  """Returns the first reason a (product id, quantity) pair is invalid."""
  if not is_valid_product_id(product_id):
    return INVALID_PRODUCT_ID
  return quantity_error(quantity)


def is_valid_email(email: Any) -> bool:
  return (
      isinstance(email, str)
      and 0 < len(email) <= MAX_EMAIL_LENGTH
      and _EMAIL_RE.match(email) is not None
  )


def clean_guest_name(name: Any) -> Optional[str]:
  """Trims, length-checks and strips markup from an optional display name.

  Args:
    name: The raw value supplied by the shopper.

  Returns:
    The cleaned name, or None when nothing remains.

  Raises:
    InvalidRequestError: If the value is not a string or is too long.
  """
  if name is None or name == "":
    return None
  if not isinstance(name, str):
    raise InvalidRequestError("Name must be a string")
  trimmed = name.strip()
  if len(trimmed) > MAX_NAME_LENGTH:
    raise InvalidRequestError(
        f"Name cannot exceed {MAX_NAME_LENGTH} characters"
    )
  return strip_html(trimmed).strip() or None


def validate_guest_items(items: Any) -> List[Tuple[str, int]]:
  """Validates the line items a guest submits at checkout.

  Unlike cart sync, a single bad item rejects the whole request.

  Args:
    items: A list of mappings with `id` and `quantity` keys.

  Returns:
    A list of (product_id, quantity) tuples in request order.

  Raises:
    InvalidRequestError: If the list is empty, too long, or any item fails.
  """
  if not isinstance(items, list) or not items:
    raise InvalidRequestError("Cart is empty")
  if len(items) > MAX_GUEST_ITEMS:
    raise InvalidRequestError(
        f"Cannot check out more than {MAX_GUEST_ITEMS} items"
    )
  validated = []
  for item in items:
    if not isinstance(item, dict):
      raise InvalidRequestError("Invalid cart items")
    reason = item_error(item.get("id"), item.get("quantity"))
    if reason:
      raise InvalidRequestError(f"Invalid cart items: {reason}")
    validated.append((item["id"], item["quantity"]))
  return validated
