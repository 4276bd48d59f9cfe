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

"""Shipping label broker.

Buys a label for an address, falling back across alternative rates when a
purchase fails (for example because a carrier account is not provisioned).
Upstream failures are reported as an unsuccessful `LabelResult` carrying a
readable reason, never raised, so the operator can correct the address or
try again.
"""

import logging
from typing import List, Optional

from storefront import tracking
from storefront.carriers import Address
from storefront.carriers import Parcel
from storefront.carriers import Rate
from storefront.carriers import ShippoClient
from storefront.enums import ShippingCarrier
from storefront.exceptions import CarrierError
from storefront.models import LabelResult

logger = logging.getLogger(__name__)

DEFAULT_CARRIER = "usps"


def candidate_rates(
    rates: List[Rate], preferred_carrier: Optional[str] = None
) -> List[Rate]:
  """Orders usable rates cheapest first, narrowed to the preferred carrier.

  Args:
    rates: Every rate quoted for the shipment.
    preferred_carrier: Carrier name fragment; USPS when not given.

  Returns:
    The preferred carrier's rates if it quoted any, else all usable rates.
  """
  usable = sorted(
      (r for r in rates if not r.has_errors), key=lambda r: r.amount
  )
  preferred = (preferred_carrier or DEFAULT_CARRIER).lower()
  matching = [r for r in usable if preferred in r.provider.lower()]
  return matching or usable


def _estimated_delivery(rate: Rate) -> Optional[str]:
  if rate.estimated_days:
    return f"{rate.estimated_days} business days"
  return rate.duration_terms


class ShippingLabelBroker:
  """Validates, rates and purchases labels through the carrier client."""

  def __init__(self, carrier_client: ShippoClient):
    self.carrier_client = carrier_client

  async def create_label(
      self,
      address: Address,
      parcel: Optional[Parcel] = None,
      preferred_carrier: Optional[str] = None,
  ) -> LabelResult:
    parcel = parcel or Parcel()

    try:
      validation = await self.carrier_client.validate_address(address)
    except CarrierError as e:
      return LabelResult(
          success=False,
          error="Address validation failed",
          messages=[e.message],
      )
    if not validation.is_valid:
      return LabelResult(
          success=False,
          error="Invalid shipping address",
          messages=[m.text for m in validation.messages if m.text],
          suggested_address=validation.suggested_address,
      )

    try:
      rates = await self.carrier_client.get_rates(address, parcel)
    except CarrierError as e:
      return LabelResult(success=False, error=e.message)

    candidates = candidate_rates(rates, preferred_carrier)
    if not candidates:
      return LabelResult(success=False, error="No shipping rates available")

    last_error = ""
    for rate in candidates:
      try:
        purchase = await self.carrier_client.purchase_label(rate)
      except CarrierError as e:
        last_error = e.message
        logger.warning(
            "Label purchase failed for %s rate %s: %s",
            rate.provider,
            rate.id,
            last_error,
        )
        continue

      if not purchase.success:
        last_error = purchase.error
        logger.warning(
            "Label purchase rejected for %s rate %s: %s",
            rate.provider,
            rate.id,
            last_error,
        )
        continue

      carrier = ShippingCarrier.from_provider(rate.provider)
      tracking_number = purchase.tracking_number or ""
      logger.info(
          "Purchased %s label %s for %s %s",
          carrier.value,
          tracking_number,
          rate.amount,
          rate.currency,
      )
      return LabelResult(
          success=True,
          tracking_number=tracking_number,
          carrier=carrier,
          label_url=purchase.label_url,
          tracking_url=tracking.tracking_url(carrier, tracking_number),
          estimated_delivery=_estimated_delivery(rate),
          rate=rate.amount,
      )

    return LabelResult(
        success=False,
        error=last_error or "No rates could be used to create a label",
    )
