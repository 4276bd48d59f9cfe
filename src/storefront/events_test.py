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

"""Tests for webhook event parsing."""

from absl.testing import absltest

from storefront import events
from storefront import testing_utils
from storefront.exceptions import InvalidRequestError


class ParseEventTest(absltest.TestCase):

  def test_handled_types_get_their_own_model(self) -> None:
    cases = {
        events.CHECKOUT_COMPLETED: events.CheckoutCompletedEvent,
        events.ASYNC_PAYMENT_SUCCEEDED: events.AsyncPaymentSucceededEvent,
        events.ASYNC_PAYMENT_FAILED: events.AsyncPaymentFailedEvent,
        events.SESSION_EXPIRED: events.SessionExpiredEvent,
    }
    for event_type, model in cases.items():
      event = events.parse_event(
          testing_utils.encode(
              testing_utils.session_event(event_type, "order_1")
          )
      )
      self.assertIsInstance(event, model)
      self.assertEqual(event.session.metadata.order_id, "order_1")

  def test_other_types_are_ignored_not_rejected(self) -> None:
    event = events.parse_event(
        {"id": "evt_9", "type": "invoice.paid", "data": {"object": {}}}
    )
    self.assertIsInstance(event, events.IgnoredEvent)
    self.assertEqual(event.type, "invoice.paid")
    self.assertIsNone(event.session)

  def test_session_fields(self) -> None:
    raw = testing_utils.session_event(
        events.CHECKOUT_COMPLETED, "order_1", payment_status="unpaid"
    )
    raw["data"]["object"]["payment_intent"] = {"id": "pi_expanded"}
    raw["data"]["object"]["customer_details"] = {"email": "payer@example.com"}
    raw["data"]["object"]["metadata"].update(
        {"isGuest": "true", "guestToken": "tok"}
    )
    session = events.parse_event(raw).session

    self.assertEqual(session.payment_intent, "pi_expanded")
    self.assertTrue(session.awaiting_payment)
    self.assertEqual(session.payer_email, "payer@example.com")
    self.assertTrue(session.metadata.guest)
    self.assertEqual(session.metadata.guest_token, "tok")
    self.assertEqual(
        session.shipping_address(),
        {
            "name": "Ada Lovelace",
            "line1": "1 Main St",
            "line2": None,
            "city": "Springfield",
            "state": "IL",
            "postal_code": "62701",
            "country": "US",
        },
    )

  def test_legacy_shipping_details_location(self) -> None:
    raw = testing_utils.session_event(
        events.CHECKOUT_COMPLETED, "order_1", with_address=False
    )
    raw["data"]["object"]["shipping_details"] = {
        "name": "Bob",
        "address": {"line1": "2 Elm St", "city": "Shelbyville"},
    }
    session = events.parse_event(raw).session
    self.assertEqual(session.shipping_address()["line1"], "2 Elm St")

  def test_no_address(self) -> None:
    raw = testing_utils.session_event(
        events.CHECKOUT_COMPLETED, "order_1", with_address=False
    )
    self.assertIsNone(events.parse_event(raw).session.shipping_address())

  def test_malformed_bodies(self) -> None:
    with self.assertRaises(InvalidRequestError):
      events.parse_event(b"not json")
    with self.assertRaises(InvalidRequestError):
      events.parse_event({"type": events.CHECKOUT_COMPLETED})
    with self.assertRaises(InvalidRequestError):
      events.parse_event(
          {"id": "evt_1", "type": events.CHECKOUT_COMPLETED, "data": {}}
      )


if __name__ == "__main__":
  absltest.main()
