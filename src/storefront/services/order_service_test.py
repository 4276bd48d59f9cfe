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

"""Tests for order lookups and operator actions."""

import asyncio
import datetime

from absl.testing import absltest

from storefront import testing_utils
from storefront.enums import OrderStatus
from storefront.enums import ShippingCarrier
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import InvalidTransitionError
from storefront.exceptions import ResourceNotFoundError
from storefront.exceptions import UnauthorizedError
from storefront.models import Identity
from storefront.services.order_service import OrderService
from storefront.services.shipping_broker import ShippingLabelBroker

ADDRESS = {
    "name": "Ada Lovelace",
    "line1": "1 Main St",
    "line2": None,
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}
ADA = Identity(user_id="user_1", email="ada@example.com", name="Ada")


class OrderServiceTest(testing_utils.StorefrontTestCase):

  def setUp(self) -> None:
    super().setUp()
    self.shippo = testing_utils.FakeShippo()

  def _call(self, method_name, *args, **kwargs):
    async def _run():
      client = self.shippo.client()
      try:
        async with self.session() as session:
          service = OrderService(session, ShippingLabelBroker(client))
          return await getattr(service, method_name)(*args, **kwargs)
      finally:
        await client.aclose()

    return asyncio.run(_run())

  def test_guest_tracking_requires_matching_pair(self) -> None:
    order_id = self.add_order(
        [("rose", 1)], email="Guest@Example.com", guest_token="tok"
    )
    view = self._call(
        "get_tracking", order_id, email="guest@example.com", guest_token="tok"
    )
    self.assertEqual(view.order_id, order_id)
    self.assertEqual(view.status, OrderStatus.PENDING)

    with self.assertRaises(ResourceNotFoundError):
      self._call(
          "get_tracking", order_id, email="other@example.com", guest_token="tok"
      )
    with self.assertRaises(ResourceNotFoundError):
      self._call(
          "get_tracking",
          order_id,
          email="guest@example.com",
          guest_token="wrong",
      )
    with self.assertRaises(UnauthorizedError):
      self._call("get_tracking", order_id, email="guest@example.com")

  def test_account_tracking_only_for_owner(self) -> None:
    self.add_user("user_1", "ada@example.com")
    self.add_user("user_2", "bob@example.com")
    mine = self.add_order([("rose", 1)], user_id="user_1")
    theirs = self.add_order([("rose", 1)], user_id="user_2")
    view = self._call("get_tracking", mine, identity=ADA)
    self.assertEqual(view.order_id, mine)
    with self.assertRaises(ResourceNotFoundError):
      self._call("get_tracking", theirs, identity=ADA)

  def test_order_history_is_newest_first(self) -> None:
    self.add_user("user_1", "ada@example.com")
    self.add_user("user_2", "bob@example.com")
    older = self.add_order(
        [("rose", 1)],
        user_id="user_1",
        created_at=datetime.datetime(2026, 1, 1),
    )
    newer = self.add_order(
        [("tulip", 2), ("vase", 1)],
        user_id="user_1",
        created_at=datetime.datetime(2026, 2, 1),
    )
    self.add_order([("rose", 1)], user_id="user_2")

    history = self._call("list_orders_for_user", ADA)

    self.assertEqual([order.id for order in history], [newer, older])
    self.assertEqual(
        [(i.product_id, i.quantity) for i in history[0].items],
        [("tulip", 2), ("vase", 1)],
    )
    self.assertEqual(history[0].total_cents, 4100)

  def test_guest_order_lookup_by_token(self) -> None:
    order_id = self.add_order([("rose", 3)], guest_token="tok_abc")

    view = self._call("get_guest_order", "tok_abc")

    self.assertEqual(view.id, order_id)
    self.assertTrue(view.is_guest)
    self.assertEqual(view.items[0].quantity, 3)
    with self.assertRaises(ResourceNotFoundError):
      self._call("get_guest_order", "tok_other")
    with self.assertRaisesRegex(InvalidRequestError, "Invalid guest token"):
      self._call("get_guest_order", "not a token!")
    with self.assertRaises(InvalidRequestError):
      self._call("get_guest_order", None)

  def test_operator_listing_filters(self) -> None:
    pending = self.add_order(
        [("rose", 1)], created_at=datetime.datetime(2026, 1, 1)
    )
    flagged = self.add_order(
        [("rose", 1)],
        status=OrderStatus.PROCESSING,
        email="Flagged@Example.com",
        needs_reconciliation=True,
        created_at=datetime.datetime(2026, 1, 2),
    )
    shipped = self.add_order(
        [("tulip", 1)],
        status=OrderStatus.SHIPPED,
        created_at=datetime.datetime(2026, 1, 3),
    )

    everything = self._call("list_orders")
    self.assertEqual([o.id for o in everything], [shipped, flagged, pending])
    self.assertEqual(
        [o.id for o in self._call("list_orders", status=OrderStatus.PENDING)],
        [pending],
    )
    self.assertEqual(
        [o.id for o in self._call("list_orders", email="flagged@example.com")],
        [flagged],
    )
    self.assertEqual(
        [o.id for o in self._call("list_orders", needs_reconciliation=True)],
        [flagged],
    )
    self.assertEqual(
        [o.id for o in self._call("list_orders", limit=1, offset=1)],
        [flagged],
    )

  def test_link_guest_orders(self) -> None:
    self.add_user("user_1", "ada@example.com")
    first = self.add_order([("rose", 1)], email="ADA@example.com")
    self.add_order([("rose", 1)], email="someone@example.com")

    result = self._call("link_guest_orders", ADA)

    self.assertEqual(result.linked, 1)
    self.assertEqual(result.order_ids, [first])
    order = self.load_order(first)
    self.assertEqual(order.user_id, "user_1")
    self.assertFalse(order.is_guest)

  def test_ship_order_buys_label_and_marks_shipped(self) -> None:
    order_id = self.add_order(
        [("rose", 1)],
        status=OrderStatus.PROCESSING,
        shipping_address=ADDRESS,
    )
    self.shippo.rates = [testing_utils.rate_json("usps_1", "USPS", "7.58")]
    self.shippo.transactions["usps_1"] = {
        "status": "SUCCESS",
        "tracking_number": "9400111",
        "label_url": "https://labels.example/1.pdf",
    }

    label = self._call("ship_order", order_id)

    self.assertTrue(label.success)
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.SHIPPED)
    self.assertEqual(order.tracking_number, "9400111")
    self.assertEqual(order.shipping_carrier, ShippingCarrier.USPS)
    self.assertIsNotNone(order.shipped_at)

  def test_failed_label_leaves_order_untouched(self) -> None:
    order_id = self.add_order(
        [("rose", 1)],
        status=OrderStatus.PROCESSING,
        shipping_address=ADDRESS,
    )
    self.shippo.address_valid = False

    label = self._call("ship_order", order_id)

    self.assertFalse(label.success)
    self.assertEqual(label.error, "Invalid shipping address")
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.PROCESSING)
    self.assertIsNone(order.tracking_number)

  def test_ship_order_preconditions(self) -> None:
    pending = self.add_order([("rose", 1)], shipping_address=ADDRESS)
    with self.assertRaises(InvalidTransitionError):
      self._call("ship_order", pending)

    no_address = self.add_order([("rose", 1)], status=OrderStatus.PROCESSING)
    with self.assertRaisesRegex(InvalidRequestError, "no shipping address"):
      self._call("ship_order", no_address)

    labelled = self.add_order(
        [("rose", 1)],
        status=OrderStatus.PROCESSING,
        shipping_address=ADDRESS,
        tracking_number="1Z999",
    )
    with self.assertRaisesRegex(InvalidRequestError, "already has"):
      self._call("ship_order", labelled)

    with self.assertRaises(ResourceNotFoundError):
      self._call("ship_order", "missing")

  def test_manual_tracking_and_delivery(self) -> None:
    order_id = self.add_order([("rose", 1)], status=OrderStatus.PROCESSING)

    view = self._call(
        "record_tracking", order_id, " 1Z999AA1 ", ShippingCarrier.UPS
    )
    self.assertEqual(view.status, OrderStatus.SHIPPED)
    self.assertEqual(view.tracking_number, "1Z999AA1")
    self.assertEqual(
        view.tracking_url, "https://www.ups.com/track?tracknum=1Z999AA1"
    )

    corrected = self._call(
        "record_tracking", order_id, "1Z999AA2", ShippingCarrier.UPS
    )
    self.assertEqual(corrected.tracking_number, "1Z999AA2")

    delivered = self._call("mark_delivered", order_id)
    self.assertEqual(delivered.status, OrderStatus.DELIVERED)
    self.assertIsNotNone(delivered.delivered_at)

    with self.assertRaises(InvalidTransitionError):
      self._call("record_tracking", order_id, "1Z999AA3", ShippingCarrier.UPS)

  def test_operator_cancel_releases_committed_stock(self) -> None:
    order_id = self.add_order(
        [("rose", 2)], status=OrderStatus.PROCESSING, stock_committed=True
    )
    view = self._call("set_status", order_id, OrderStatus.CANCELLED)
    self.assertEqual(view.status, OrderStatus.CANCELLED)
    self.assertFalse(view.stock_committed)
    self.assertEqual(self.stock_of("rose"), 7)

  def test_operator_refund_keeps_stock(self) -> None:
    order_id = self.add_order(
        [("rose", 2)], status=OrderStatus.SHIPPED, stock_committed=True
    )
    view = self._call("set_status", order_id, OrderStatus.REFUNDED)
    self.assertEqual(view.status, OrderStatus.REFUNDED)
    self.assertEqual(self.stock_of("rose"), 5)
    with self.assertRaises(InvalidTransitionError):
      self._call("set_status", order_id, OrderStatus.PROCESSING)


if __name__ == "__main__":
  absltest.main()
