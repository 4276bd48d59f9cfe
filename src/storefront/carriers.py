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

"""Client for the Shippo carrier aggregation REST API.

Only the three calls the label broker needs are wrapped: address validation,
shipment rating and label purchase. Every transport or API failure surfaces
as `CarrierError`; interpreting those failures is the broker's job.
"""

from decimal import Decimal
from decimal import InvalidOperation
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel
from pydantic import Field

from storefront.exceptions import CarrierError

logger = logging.getLogger(__name__)


class Address(BaseModel):
  name: Optional[str] = None
  street1: str
  street2: Optional[str] = None
  city: str
  state: str
  zip: str
  country: str = "US"
  phone: Optional[str] = None
  email: Optional[str] = None

  @classmethod
  def from_stored(cls, stored: Dict[str, Any]) -> "Address":
    """Builds an address from the shape persisted on an order."""
    return cls(
        name=stored.get("name"),
        street1=stored.get("line1") or "",
        street2=stored.get("line2"),
        city=stored.get("city") or "",
        state=stored.get("state") or "",
        zip=stored.get("postal_code") or "",
        country=stored.get("country") or "US",
    )


class Parcel(BaseModel):
  length: Decimal = Decimal("10")
  width: Decimal = Decimal("8")
  height: Decimal = Decimal("4")
  distance_unit: str = "in"
  weight: Decimal = Decimal("1")
  mass_unit: str = "lb"


class CarrierMessage(BaseModel):
  source: Optional[str] = None
  code: Optional[str] = None
  type: Optional[str] = None
  text: Optional[str] = None


class AddressValidation(BaseModel):
  is_valid: bool
  messages: List[CarrierMessage] = Field(default_factory=list)
  suggested_address: Optional[Address] = None


class Rate(BaseModel):
  id: str
  provider: str
  service: str = "Standard"
  amount: Decimal
  currency: str = "USD"
  estimated_days: Optional[int] = None
  duration_terms: Optional[str] = None
  messages: List[CarrierMessage] = Field(default_factory=list)

  @property
  def has_errors(self) -> bool:
    return any(m.source == "error" or m.type == "error" for m in self.messages)


class LabelPurchase(BaseModel):
  success: bool
  tracking_number: Optional[str] = None
  label_url: Optional[str] = None
  messages: List[CarrierMessage] = Field(default_factory=list)

  @property
  def error(self) -> str:
    texts = [m.text for m in self.messages if m.text]
    return ", ".join(texts) or "Label creation failed"


def _address_payload(address: Address) -> Dict[str, Any]:
  return {k: v for k, v in address.model_dump().items() if v is not None}


def _parcel_payload(parcel: Parcel) -> Dict[str, str]:
  return {
      "length": str(parcel.length),
      "width": str(parcel.width),
      "height": str(parcel.height),
      "distance_unit": parcel.distance_unit,
      "weight": str(parcel.weight),
      "mass_unit": parcel.mass_unit,
  }


def _messages(raw: Optional[List[Dict[str, Any]]]) -> List[CarrierMessage]:
  return [CarrierMessage.model_validate(m) for m in raw or []]


class ShippoClient:
  """Asynchronous Shippo client over a shared `httpx.AsyncClient`."""

  def __init__(
      self,
      api_key: Optional[str],
      sender: Address,
      base_url: str = "https://api.goshippo.com",
      timeout: float = 30.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.sender = sender
    headers = {}
    if api_key:
      headers["Authorization"] = f"ShippoToken {api_key}"
    self._client = httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        transport=transport,
    )

  async def aclose(self) -> None:
    await self._client.aclose()

  async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
      response = await self._client.post(path, json=payload)
    except httpx.HTTPError as e:
      logger.error("Carrier request to %s failed: %s", path, e)
      raise CarrierError(f"Carrier request failed: {e}") from e

    if response.status_code >= 400:
      try:
        body = response.json()
      except ValueError:
        body = None
      detail = (
          body.get("detail") if isinstance(body, dict) else None
      ) or response.text
      logger.warning(
          "Carrier request to %s returned %s: %s",
          path,
          response.status_code,
          detail,
      )
      raise CarrierError(str(detail) or f"HTTP {response.status_code}")

    try:
      data = response.json()
    except ValueError as e:
      logger.warning("Carrier request to %s returned a non-JSON body", path)
      raise CarrierError("Malformed carrier response") from e
    if not isinstance(data, dict):
      raise CarrierError("Malformed carrier response")
    return data

  async def validate_address(self, address: Address) -> AddressValidation:
    data = await self._post(
        "/addresses/", {**_address_payload(address), "validate": True}
    )
    results = data.get("validation_results") or {}
    is_valid = bool(results.get("is_valid"))
    suggested = None
    if not is_valid and data.get("street1"):
      suggested = Address(
          street1=data.get("street1") or "",
          street2=data.get("street2"),
          city=data.get("city") or "",
          state=data.get("state") or "",
          zip=data.get("zip") or "",
          country=data.get("country") or address.country,
      )
    return AddressValidation(
        is_valid=is_valid,
        messages=_messages(results.get("messages")),
        suggested_address=suggested,
    )

  async def get_rates(self, to_address: Address, parcel: Parcel) -> List[Rate]:
    """Creates a shipment and returns every rate quoted for it."""
    data = await self._post(
        "/shipments/",
        {
            "address_from": _address_payload(self.sender),
            "address_to": _address_payload(to_address),
            "parcels": [_parcel_payload(parcel)],
            "async": False,
        },
    )
    rates = []
    for raw in data.get("rates") or []:
      if not isinstance(raw, dict) or not raw.get("object_id"):
        continue
      try:
        amount = Decimal(str(raw.get("amount")))
      except InvalidOperation:
        continue
      rates.append(
          Rate(
              id=raw["object_id"],
              provider=raw.get("provider") or "Unknown",
              service=(raw.get("servicelevel") or {}).get("name")
              or "Standard",
              amount=amount,
              currency=raw.get("currency") or "USD",
              estimated_days=raw.get("estimated_days"),
              duration_terms=raw.get("duration_terms"),
              messages=_messages(raw.get("messages")),
          )
      )
    return rates

  async def purchase_label(self, rate: Rate) -> LabelPurchase:
    data = await self._post(
        "/transactions/",
        {"rate": rate.id, "label_file_type": "PDF", "async": False},
    )
    return LabelPurchase(
        success=data.get("status") == "SUCCESS",
        tracking_number=data.get("tracking_number"),
        label_url=data.get("label_url"),
        messages=_messages(data.get("messages")),
    )
