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

"""Shared configuration and startup logic for the storefront server."""

import contextlib
import logging
from typing import Optional

from absl import flags
from fastapi import FastAPI
from pydantic import BaseModel
from pydantic import ConfigDict

FLAGS = flags.FLAGS

logger = logging.getLogger(__name__)

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string(
      "database_url",
      "sqlite+aiosqlite:///storefront.db",
      "SQLAlchemy URL of the storefront database",
  )
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string(
      "app_url",
      "http://localhost:3000",
      "Public URL of the storefront, used for payment redirect URLs",
  )
  flags.DEFINE_string("stripe_secret_key", None, "Stripe secret API key")
  flags.DEFINE_string(
      "stripe_webhook_secret", None, "Stripe webhook signing secret"
  )
  flags.DEFINE_integer(
      "webhook_tolerance_seconds",
      300,
      "Maximum age of a signed webhook timestamp",
  )
  flags.DEFINE_string(
      "operator_api_key", None, "Shared key required on operator endpoints"
  )
  flags.DEFINE_string("shippo_api_key", None, "Shippo API token")
  flags.DEFINE_string(
      "shippo_base_url", "https://api.goshippo.com", "Shippo API base URL"
  )
  flags.DEFINE_float(
      "carrier_timeout_seconds", 30.0, "Timeout for carrier API calls"
  )
  flags.DEFINE_float(
      "payment_timeout_seconds", 30.0, "Timeout for payment provider calls"
  )
  flags.DEFINE_bool(
      "rate_limit_enabled", False, "Enforce per-client request rate limits"
  )
  flags.DEFINE_integer(
      "free_shipping_threshold_cents",
      5000,
      "Subtotal at or above which shipping is free",
  )
  flags.DEFINE_integer(
      "flat_rate_shipping_cents", 599, "Shipping charged below the threshold"
  )
  flags.DEFINE_string("sender_name", "Storefront", "Return address name")
  flags.DEFINE_string("sender_street1", "", "Return address line 1")
  flags.DEFINE_string("sender_city", "", "Return address city")
  flags.DEFINE_string("sender_state", "", "Return address state")
  flags.DEFINE_string("sender_zip", "", "Return address postal code")
  flags.DEFINE_string("sender_country", "US", "Return address country")
  flags.DEFINE_string("sender_phone", None, "Return address phone")
  flags.DEFINE_string("sender_email", None, "Return address email")
except flags.DuplicateFlagError:
  pass


class Settings(BaseModel):
  """Immutable runtime configuration handed to the application factory."""

  model_config = ConfigDict(frozen=True)

  database_url: str = "sqlite+aiosqlite:///storefront.db"
  port: Optional[int] = None
  app_url: str = "http://localhost:3000"
  stripe_secret_key: Optional[str] = None
  stripe_webhook_secret: Optional[str] = None
  webhook_tolerance_seconds: int = 300
  operator_api_key: Optional[str] = None
  shippo_api_key: Optional[str] = None
  shippo_base_url: str = "https://api.goshippo.com"
  carrier_timeout_seconds: float = 30.0
  payment_timeout_seconds: float = 30.0
  rate_limit_enabled: bool = False
  free_shipping_threshold_cents: int = 5000
  flat_rate_shipping_cents: int = 599
  sender_name: str = "Storefront"
  sender_street1: str = ""
  sender_city: str = ""
  sender_state: str = ""
  sender_zip: str = ""
  sender_country: str = "US"
  sender_phone: Optional[str] = None
  sender_email: Optional[str] = None

  @classmethod
  def from_flags(cls) -> "Settings":
    """Builds settings from the parsed absl flags."""
    return cls(**{
        name: getattr(FLAGS, name)
        for name in cls.model_fields
        if getattr(FLAGS, name) is not None
    })

  def sender_address(self) -> dict:
    return {
        "name": self.sender_name,
        "street1": self.sender_street1,
        "city": self.sender_city,
        "state": self.sender_state,
        "zip": self.sender_zip,
        "country": self.sender_country,
        "phone": self.sender_phone,
        "email": self.sender_email,
    }


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for the database and outbound clients."""
  db_manager = app.state.db_manager
  if not db_manager.initialized:
    await db_manager.init_db()
  yield
  carrier_client = getattr(app.state, "carrier_client", None)
  if carrier_client is not None:
    await carrier_client.aclose()
  await db_manager.close()
