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

"""Tests for label purchasing with rate fallback."""

import asyncio
from decimal import Decimal

from absl.testing import absltest
import httpx

from storefront import carriers
from storefront import testing_utils
from storefront.enums import ShippingCarrier
from storefront.services import shipping_broker

SENDER = carriers.Address(
    street1="100 Warehouse Rd", city="Austin", state="TX", zip="73301"
)
RECIPIENT = carriers.Address(
    name="Ada Lovelace",
    street1="1 Main St",
    city="Springfield",
    state="IL",
    zip="62701",
)


class CandidateRatesTest(absltest.TestCase):

  def _rate(self, object_id, provider, amount, messages=None):
    return carriers.Rate(
        id=object_id,
        provider=provider,
        amount=Decimal(amount),
        messages=messages or [],
    )

  def test_cheapest_preferred_first(self) -> None:
    rates = [
        self._rate("ups", "UPS", "9.10"),
        self._rate("usps_b", "USPS", "8.00"),
        self._rate("usps_a", "USPS", "6.50"),
    ]
    self.assertEqual(
        [r.id for r in shipping_broker.candidate_rates(rates)],
        ["usps_a", "usps_b"],
    )
    self.assertEqual(
        [r.id for r in shipping_broker.candidate_rates(rates, "ups")], ["ups"]
    )

  def test_falls_back_to_all_usable_rates(self) -> None:
    rates = [
        self._rate("ups", "UPS", "9.10"),
        self._rate(
            "dhl",
            "DHL Express",
            "3.00",
            messages=[carriers.CarrierMessage(type="error", text="No service")],
        ),
        self._rate("fedex", "FedEx", "12.00"),
    ]
    self.assertEqual(
        [r.id for r in shipping_broker.candidate_rates(rates)],
        ["ups", "fedex"],
    )


class ShippingLabelBrokerTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.shippo = testing_utils.FakeShippo()

  def _create_label(self, **kwargs):
    async def _run():
      client = carriers.ShippoClient(
          api_key="key",
          sender=SENDER,
          transport=httpx.MockTransport(self.shippo),
      )
      try:
        broker = shipping_broker.ShippingLabelBroker(client)
        return await broker.create_label(RECIPIENT, **kwargs)
      finally:
        await client.aclose()

    return asyncio.run(_run())

  def test_buys_cheapest_preferred_rate(self) -> None:
    self.shippo.rates = [
        testing_utils.rate_json("usps_1", "USPS", "7.58", estimated_days=3),
        testing_utils.rate_json("ups_1", "UPS", "5.00"),
    ]
    self.shippo.transactions["usps_1"] = {
        "status": "SUCCESS",
        "tracking_number": "9400111",
        "label_url": "https://labels.example/usps_1.pdf",
    }

    label = self._create_label()

    self.assertTrue(label.success)
    self.assertEqual(label.carrier, ShippingCarrier.USPS)
    self.assertEqual(label.tracking_number, "9400111")
    self.assertEqual(label.rate, Decimal("7.58"))
    self.assertEqual(label.estimated_delivery, "3 business days")
    self.assertEqual(
        label.tracking_url,
        "https://tools.usps.com/go/TrackConfirmAction?tLabels=9400111",
    )
    self.assertEqual(self.shippo.purchased, ["usps_1"])

  def test_falls_back_to_next_rate(self) -> None:
    self.shippo.rates = [
        testing_utils.rate_json("ups_1", "UPS", "5.00"),
        testing_utils.rate_json(
            "fedex_1", "FedEx", "6.00", duration_terms="1-3 days"
        ),
    ]
    self.shippo.transactions["ups_1"] = 400
    self.shippo.transactions["fedex_1"] = {
        "status": "SUCCESS",
        "tracking_number": "7777",
    }

    label = self._create_label()

    self.assertTrue(label.success)
    self.assertEqual(label.carrier, ShippingCarrier.FEDEX)
    self.assertEqual(label.estimated_delivery, "1-3 days")
    self.assertEqual(self.shippo.purchased, ["ups_1", "fedex_1"])

  def test_reports_last_error_when_every_rate_fails(self) -> None:
    self.shippo.rates = [
        testing_utils.rate_json("usps_1", "USPS", "5.00"),
        testing_utils.rate_json("usps_2", "USPS", "6.00"),
    ]
    self.shippo.transactions["usps_1"] = 400
    self.shippo.transactions["usps_2"] = {
        "status": "ERROR",
        "messages": [{"text": "Insufficient postage balance"}],
    }

    label = self._create_label()

    self.assertFalse(label.success)
    self.assertEqual(label.error, "Insufficient postage balance")

  def test_malformed_purchase_response_falls_through(self) -> None:
    self.shippo.rates = [
        testing_utils.rate_json("usps_1", "USPS", "5.00"),
        testing_utils.rate_json("usps_2", "USPS", "6.00"),
    ]
    self.shippo.transactions["usps_1"] = httpx.Response(
        200, text="<html>Bad gateway</html>"
    )
    self.shippo.transactions["usps_2"] = {
        "status": "SUCCESS",
        "tracking_number": "9400222",
    }

    label = self._create_label()

    self.assertTrue(label.success)
    self.assertEqual(label.tracking_number, "9400222")
    self.assertEqual(self.shippo.purchased, ["usps_1", "usps_2"])

  def test_rates_without_ids_are_unusable(self) -> None:
    self.shippo.rates = [{"provider": "USPS", "amount": "5.00"}]
    label = self._create_label()
    self.assertFalse(label.success)
    self.assertEqual(label.error, "No shipping rates available")
    self.assertEqual(self.shippo.purchased, [])

  def test_invalid_address_is_not_rated(self) -> None:
    self.shippo.address_valid = False
    label = self._create_label()
    self.assertFalse(label.success)
    self.assertEqual(label.error, "Invalid shipping address")
    self.assertEqual(label.messages, ["Unknown street"])
    self.assertEqual(self.shippo.purchased, [])

  def test_no_rates(self) -> None:
    label = self._create_label()
    self.assertFalse(label.success)
    self.assertEqual(label.error, "No shipping rates available")


if __name__ == "__main__":
  absltest.main()
