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

"""Enumerations for the storefront fulfillment engine.

This module defines the enums persisted on orders and exposed through the
API: the order lifecycle status and the shipping carrier.
"""

import enum


class OrderStatus(str, enum.Enum):
  PENDING = "PENDING"
  PROCESSING = "PROCESSING"
  SHIPPED = "SHIPPED"
  DELIVERED = "DELIVERED"
  CANCELLED = "CANCELLED"
  REFUNDED = "REFUNDED"


class ShippingCarrier(str, enum.Enum):
  USPS = "USPS"
  UPS = "UPS"
  FEDEX = "FEDEX"
  DHL = "DHL"
  OTHER = "OTHER"

  @classmethod
  def from_provider(cls, provider: str) -> "ShippingCarrier":
    """Maps a carrier aggregator provider name (e.g. 'USPS', 'FedEx')."""
    name = (provider or "").lower()
    if "usps" in name:
      return cls.USPS
    if "ups" in name:
      return cls.UPS
    if "fedex" in name:
      return cls.FEDEX
    if "dhl" in name:
      return cls.DHL
    return cls.OTHER


class TransitionActor(str, enum.Enum):
  """Who is asking the order state machine to move."""

  PAYMENT_WEBHOOK = "payment_webhook"
  OPERATOR = "operator"
