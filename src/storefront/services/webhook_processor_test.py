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

"""Tests for verified, exactly-once payment webhook processing."""

import asyncio
import time

from absl.testing import absltest

from storefront import events
from storefront import testing_utils
from storefront.enums import OrderStatus
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import ResourceNotFoundError
from storefront.exceptions import SignatureVerificationError
from storefront.services.webhook_processor import WebhookProcessor

GUEST_TOKEN = "guest-token-1"


class WebhookProcessorTest(testing_utils.StorefrontTestCase):

  def setUp(self) -> None:
    super().setUp()
    self.gateway = testing_utils.FakePaymentGateway()

  def _deliver(self, event, signature=None):
    """Delivers an event the way the route does: one session per request."""
    payload = testing_utils.encode(event)
    if signature is None:
      signature = testing_utils.sign_payload(payload)

    async def _run():
      async with self.session() as session:
        processor = WebhookProcessor(session, self.gateway)
        return await processor.handle_event(payload, signature)

    return asyncio.run(_run())

  def _completed(self, order_id, event_id="evt_1", **kwargs):
    return testing_utils.session_event(
        events.CHECKOUT_COMPLETED, order_id, event_id=event_id, **kwargs
    )

  def test_completed_confirms_and_takes_stock(self) -> None:
    order_id = self.add_order(
        [("rose", 2), ("tulip", 1)], guest_token=GUEST_TOKEN
    )

    result = self._deliver(self._completed(order_id))

    self.assertFalse(result.duplicate)
    self.assertFalse(result.stock_inconsistency)
    self.assertEqual(result.order_id, order_id)
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.PROCESSING)
    self.assertTrue(order.stock_committed)
    self.assertEqual(order.payment_reference, "pi_test_1")
    self.assertEqual(order.shipping_address["postal_code"], "62701")
    self.assertEqual(order.shipping_address["name"], "Ada Lovelace")
    self.assertEqual(self.stock_of("rose"), 3)
    self.assertEqual(self.stock_of("tulip"), 1)

  def test_same_event_twice_decrements_once(self) -> None:
    order_id = self.add_order([("rose", 2)], guest_token=GUEST_TOKEN)
    event = self._completed(order_id)

    first = self._deliver(event)
    second = self._deliver(event)

    self.assertFalse(first.duplicate)
    self.assertTrue(second.duplicate)
    self.assertEqual(self.stock_of("rose"), 3)
    self.assertEqual(self.processed_event_count(), 1)

  def test_distinct_events_for_same_order_decrement_once(self) -> None:
    order_id = self.add_order([("rose", 2)], guest_token=GUEST_TOKEN)
    self._deliver(self._completed(order_id, event_id="evt_1"))
    self._deliver(
        testing_utils.session_event(
            events.ASYNC_PAYMENT_SUCCEEDED, order_id, event_id="evt_2"
        )
    )
    self.assertEqual(self.stock_of("rose"), 3)
    self.assertEqual(self.processed_event_count(), 2)

  def test_concurrent_duplicate_deliveries(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)
    payload = testing_utils.encode(self._completed(order_id))
    signature = testing_utils.sign_payload(payload)

    async def _one():
      async with self.session() as session:
        processor = WebhookProcessor(session, self.gateway)
        return await processor.handle_event(payload, signature)

    async def _both():
      return await asyncio.gather(_one(), _one())

    results = asyncio.run(_both())
    self.assertCountEqual([r.duplicate for r in results], [False, True])
    self.assertEqual(self.stock_of("rose"), 4)

  def test_last_unit_race_flags_second_order(self) -> None:
    first = self.add_order([("vase", 1)], guest_token="token-a")
    second = self.add_order([("vase", 1)], guest_token="token-b")

    self._deliver(self._completed(first, event_id="evt_a"))
    result = self._deliver(
        self._completed(second, event_id="evt_b", session_id="cs_test_2")
    )

    self.assertTrue(result.stock_inconsistency)
    self.assertEqual(self.stock_of("vase"), 0)
    winner = self.load_order(first)
    loser = self.load_order(second)
    self.assertTrue(winner.stock_committed)
    self.assertFalse(winner.needs_reconciliation)
    self.assertEqual(loser.status, OrderStatus.PROCESSING)
    self.assertFalse(loser.stock_committed)
    self.assertTrue(loser.needs_reconciliation)
    # The event is still recorded; a retry could not fix the shortfall.
    self.assertEqual(self.processed_event_count(), 2)

  def test_delayed_payment_waits_for_success_event(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)

    self._deliver(self._completed(order_id, payment_status="unpaid"))
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.PENDING)
    self.assertEqual(order.payment_reference, "pi_test_1")
    self.assertEqual(self.stock_of("rose"), 5)

    self._deliver(
        testing_utils.session_event(
            events.ASYNC_PAYMENT_SUCCEEDED, order_id, event_id="evt_2"
        )
    )
    self.assertEqual(self.load_order(order_id).status, OrderStatus.PROCESSING)
    self.assertEqual(self.stock_of("rose"), 4)

  def test_expired_session_cancels_pending_order(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)
    self._deliver(
        testing_utils.session_event(events.SESSION_EXPIRED, order_id)
    )
    self.assertEqual(self.load_order(order_id).status, OrderStatus.CANCELLED)
    self.assertEqual(self.stock_of("rose"), 5)

  def test_failed_async_payment_releases_committed_stock(self) -> None:
    order_id = self.add_order(
        [("rose", 2)],
        guest_token=GUEST_TOKEN,
        status=OrderStatus.PROCESSING,
        stock_committed=True,
    )
    self._deliver(
        testing_utils.session_event(events.ASYNC_PAYMENT_FAILED, order_id)
    )
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.CANCELLED)
    self.assertFalse(order.stock_committed)
    self.assertEqual(self.stock_of("rose"), 7)

  def test_payment_on_cancelled_order_is_flagged(self) -> None:
    order_id = self.add_order(
        [("rose", 1)], guest_token=GUEST_TOKEN, status=OrderStatus.CANCELLED
    )
    self._deliver(self._completed(order_id))
    order = self.load_order(order_id)
    self.assertEqual(order.status, OrderStatus.CANCELLED)
    self.assertTrue(order.needs_reconciliation)
    self.assertEqual(self.stock_of("rose"), 5)

  def test_account_order_clears_cart(self) -> None:
    self.add_user("user_1", "ada@example.com")
    self.add_cart_item("user_1", "rose", 1)
    order_id = self.add_order([("rose", 1)], user_id="user_1")
    self._deliver(self._completed(order_id))
    self.assertEqual(self.cart_quantities("user_1"), {})

  def test_guest_order_is_soft_linked_without_touching_cart(self) -> None:
    self.add_user("user_1", "ada@example.com")
    self.add_cart_item("user_1", "tulip", 1)
    order_id = self.add_order(
        [("rose", 1)], email="ADA@example.com", guest_token=GUEST_TOKEN
    )
    self._deliver(self._completed(order_id, customer_email="Ada@Example.com"))
    order = self.load_order(order_id)
    self.assertEqual(order.user_id, "user_1")
    self.assertFalse(order.is_guest)
    self.assertEqual(order.guest_token, GUEST_TOKEN)
    self.assertEqual(self.cart_quantities("user_1"), {"tulip": 1})

  def test_unknown_event_type_is_recorded_without_side_effects(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)
    result = self._deliver({
        "id": "evt_other",
        "type": "charge.refunded",
        "data": {"object": {"metadata": {"orderId": order_id}}},
    })
    self.assertFalse(result.duplicate)
    self.assertIsNone(result.order_id)
    self.assertEqual(self.load_order(order_id).status, OrderStatus.PENDING)
    self.assertEqual(self.processed_event_count(), 1)

  def test_bad_signature_touches_nothing(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)
    event = self._completed(order_id)
    with self.assertRaises(SignatureVerificationError):
      self._deliver(event, signature="t=1,v1=deadbeef")
    with self.assertRaisesRegex(SignatureVerificationError, "No signature"):
      self._deliver(event, signature="")
    stale = testing_utils.sign_payload(
        testing_utils.encode(event), timestamp=int(time.time()) - 3600
    )
    with self.assertRaises(SignatureVerificationError):
      self._deliver(event, signature=stale)
    self.assertEqual(self.processed_event_count(), 0)
    self.assertEqual(self.load_order(order_id).status, OrderStatus.PENDING)

  def test_missing_order_is_retryable(self) -> None:
    with self.assertRaises(ResourceNotFoundError):
      self._deliver(self._completed("no-such-order"))
    with self.assertRaises(InvalidRequestError):
      self._deliver(self._completed(None, event_id="evt_2"))
    # Nothing was recorded, so the provider's retry is processed afresh.
    self.assertEqual(self.processed_event_count(), 0)

  def test_failed_event_can_be_retried(self) -> None:
    order_id = self.add_order([("rose", 1)], guest_token=GUEST_TOKEN)
    event = self._completed(order_id, event_id="evt_retry")
    event["data"]["object"]["metadata"]["orderId"] = "not-yet"
    with self.assertRaises(ResourceNotFoundError):
      self._deliver(event)
    event["data"]["object"]["metadata"]["orderId"] = order_id
    result = self._deliver(event)
    self.assertFalse(result.duplicate)
    self.assertEqual(self.load_order(order_id).status, OrderStatus.PROCESSING)


if __name__ == "__main__":
  absltest.main()
