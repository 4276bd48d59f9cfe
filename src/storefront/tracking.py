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

"""Public tracking page URLs and display names per carrier."""

from typing import Optional

from storefront.enums import ShippingCarrier

_TRACKING_URLS = {
    ShippingCarrier.USPS: (
        "https://tools.usps.com/go/TrackConfirmAction?tLabels={}"
    ),
    ShippingCarrier.UPS: "https://www.ups.com/track?tracknum={}",
    ShippingCarrier.FEDEX: "https://www.fedex.com/fedextrack/?trknbr={}",
    ShippingCarrier.DHL: (
        "https://www.dhl.com/us-en/home/tracking/tracking-express.html"
        "?submit=1&tracking-id={}"
    ),
}

_CARRIER_NAMES = {
    ShippingCarrier.USPS: "USPS",
    ShippingCarrier.UPS: "UPS",
    ShippingCarrier.FEDEX: "FedEx",
    ShippingCarrier.DHL: "DHL",
}


def tracking_url(
    carrier: Optional[ShippingCarrier], tracking_number: Optional[str]
) -> Optional[str]:
  if not carrier or not tracking_number:
    return None
  template = _TRACKING_URLS.get(ShippingCarrier(carrier))
  if template is None:
    return None
  return template.format(tracking_number.strip())


def carrier_name(carrier: Optional[ShippingCarrier]) -> str:
  if not carrier:
    return "Carrier"
  return _CARRIER_NAMES.get(ShippingCarrier(carrier), "Carrier")
