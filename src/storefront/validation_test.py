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

"""Tests for shopper input validation."""

from absl.testing import absltest

from storefront import validation
from storefront.exceptions import InvalidRequestError


class ValidationTest(absltest.TestCase):

  def test_product_ids(self) -> None:
    self.assertTrue(validation.is_valid_product_id("rose_red-1"))
    self.assertFalse(validation.is_valid_product_id(""))
    self.assertFalse(validation.is_valid_product_id("rose; DROP"))
    self.assertFalse(validation.is_valid_product_id("a" * 101))
    self.assertFalse(validation.is_valid_product_id(42))

  def test_quantity_reasons(self) -> None:
    self.assertIsNone(validation.quantity_error(3))
    self.assertEqual(
        validation.quantity_error(1.5), validation.QUANTITY_NOT_INTEGER
    )
    self.assertEqual(
        validation.quantity_error("2"), validation.QUANTITY_NOT_INTEGER
    )
    self.assertEqual(
        validation.quantity_error(True), validation.QUANTITY_NOT_INTEGER
    )
    self.assertEqual(
        validation.quantity_error(0), validation.QUANTITY_TOO_SMALL
    )
    self.assertEqual(
        validation.quantity_error(1001), validation.QUANTITY_TOO_LARGE
    )

  def test_emails(self) -> None:
    self.assertTrue(validation.is_valid_email("ada@example.com"))
    self.assertFalse(validation.is_valid_email("ada@example"))
    self.assertFalse(validation.is_valid_email("a b@example.com"))
    self.assertFalse(validation.is_valid_email(None))

  def test_guest_name_is_cleaned(self) -> None:
    self.assertEqual(
        validation.clean_guest_name("  <b>Ada</b><script>x()</script> "),
        "Ada",
    )
    self.assertIsNone(validation.clean_guest_name(""))
    self.assertIsNone(validation.clean_guest_name("<i></i>"))
    with self.assertRaises(InvalidRequestError):
      validation.clean_guest_name("x" * 101)
    with self.assertRaises(InvalidRequestError):
      validation.clean_guest_name(7)

  def test_guest_items_reject_whole_request(self) -> None:
    self.assertEqual(
        validation.validate_guest_items([{"id": "rose", "quantity": 2}]),
        [("rose", 2)],
    )
    with self.assertRaisesRegex(InvalidRequestError, "Cart is empty"):
      validation.validate_guest_items([])
    with self.assertRaisesRegex(InvalidRequestError, "Invalid cart items"):
      validation.validate_guest_items(
          [{"id": "rose", "quantity": 1}, {"id": "tulip", "quantity": 0}]
      )


if __name__ == "__main__":
  absltest.main()
