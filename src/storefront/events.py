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

"""Typed payment webhook events.

Raw webhook bodies are parsed into one variant of a tagged union keyed on the
event `type`. Types this service acts on get a dedicated model; every other
type lands in `IgnoredEvent`, so dispatch never falls through an untyped
default branch.
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Discriminator
from pydantic import Field
from pydantic import field_validator
from pydantic import Tag
from pydantic import TypeAdapter
from pydantic import ValidationError

from storefront.exceptions import InvalidRequestError

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
SESSION_EXPIRED = "checkout.session.expired"

_IGNORED_TAG = "ignored"


class _Lenient(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PostalAddress(_Lenient):
  line1: Optional[str] = None
  line2: Optional[str] = None
  city: Optional[str] = None
  state: Optional[str] = None
  postal_code: Optional[str] = None
  country: Optional[str] = None


class ShippingDetails(_Lenient):
  name: Optional[str] = None
  address: Optional[PostalAddress] = None


class CollectedInformation(_Lenient):
  shipping_details: Optional[ShippingDetails] = None


class CustomerDetails(_Lenient):
  email: Optional[str] = None
  name: Optional[str] = None


class SessionMetadata(_Lenient):
  """Opaque values echoed back verbatim from session creation."""

  order_id: Optional[str] = Field(default=None, alias="orderId")
  user_id: Optional[str] = Field(default=None, alias="userId")
  is_guest: Optional[str] = Field(default=None, alias="isGuest")
  guest_token: Optional[str] = Field(default=None, alias="guestToken")

  @property
  def guest(self) -> bool:
    return self.is_guest == "true"


class CheckoutSession(_Lenient):
  """The subset of a hosted checkout session this service reads."""

  id: str
  metadata: SessionMetadata = Field(default_factory=SessionMetadata)
  customer_email: Optional[str] = None
  customer_details: Optional[CustomerDetails] = None
  payment_intent: Optional[str] = None
  # "paid", "unpaid" (delayed methods) or "no_payment_required".
  payment_status: Optional[str] = None
  collected_information: Optional[CollectedInformation] = None
  # Older API versions put the shipping details on the session itself.
  shipping_details: Optional[ShippingDetails] = None

  @field_validator("payment_intent", mode="before")
  @classmethod
  def _payment_intent_id(cls, value: Any) -> Any:
    if isinstance(value, dict):
      return value.get("id")
    return value

  @property
  def awaiting_payment(self) -> bool:
    return self.payment_status == "unpaid"

  @property
  def payer_email(self) -> Optional[str]:
    if self.customer_email:
      return self.customer_email
    if self.customer_details and self.customer_details.email:
      return self.customer_details.email
    return None

  def shipping_address(self) -> Optional[Dict[str, Any]]:
    """Flattens the collected shipping details into the stored shape."""
    details = None
    if self.collected_information:
      details = self.collected_information.shipping_details
    details = details or self.shipping_details
    if not details or not details.address:
      return None
    address = details.address
    return {
        "name": details.name,
        "line1": address.line1,
        "line2": address.line2,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }


class SessionEventData(_Lenient):
  object: CheckoutSession


class _Event(_Lenient):
  id: str
  created: Optional[int] = None

  @property
  def session(self) -> Optional[CheckoutSession]:
    return None


class _SessionEvent(_Event):
  data: SessionEventData

  @property
  def session(self) -> CheckoutSession:
    return self.data.object


class CheckoutCompletedEvent(_SessionEvent):
  type: Literal["checkout.session.completed"]


class AsyncPaymentSucceededEvent(_SessionEvent):
  type: Literal["checkout.session.async_payment_succeeded"]


class AsyncPaymentFailedEvent(_SessionEvent):
  type: Literal["checkout.session.async_payment_failed"]


class SessionExpiredEvent(_SessionEvent):
  type: Literal["checkout.session.expired"]


class IgnoredEvent(_Event):
  """Any event type this service does not act on."""

  type: str
  data: Dict[str, Any] = Field(default_factory=dict)


_HANDLED_TYPES = frozenset({
    CHECKOUT_COMPLETED,
    ASYNC_PAYMENT_SUCCEEDED,
    ASYNC_PAYMENT_FAILED,
    SESSION_EXPIRED,
})


def _event_tag(value: Any) -> str:
  if isinstance(value, dict):
    event_type = value.get("type")
  else:
    event_type = getattr(value, "type", None)
  return event_type if event_type in _HANDLED_TYPES else _IGNORED_TAG


WebhookEvent = Annotated[
    Union[
        Annotated[CheckoutCompletedEvent, Tag(CHECKOUT_COMPLETED)],
        Annotated[AsyncPaymentSucceededEvent, Tag(ASYNC_PAYMENT_SUCCEEDED)],
        Annotated[AsyncPaymentFailedEvent, Tag(ASYNC_PAYMENT_FAILED)],
        Annotated[SessionExpiredEvent, Tag(SESSION_EXPIRED)],
        Annotated[IgnoredEvent, Tag(_IGNORED_TAG)],
    ],
    Discriminator(_event_tag),
]

_EVENT_ADAPTER = TypeAdapter(WebhookEvent)


def parse_event(payload: Union[bytes, str, Dict[str, Any]]) -> WebhookEvent:
  """Parses a raw webhook body into its typed event variant.

  Args:
    payload: The raw request body, or an already decoded JSON object.

  Returns:
    One of the event models above.

  Raises:
    InvalidRequestError: If the body is not JSON or lacks required fields.
  """
  try:
    if isinstance(payload, (bytes, str)):
      payload = json.loads(payload)
    return _EVENT_ADAPTER.validate_python(payload)
  except (ValueError, ValidationError) as e:
    raise InvalidRequestError(f"Malformed webhook event: {e}") from e
