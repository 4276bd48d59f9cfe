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

"""Storefront Fulfillment Server (Python/FastAPI)."""

import logging
import sys
from typing import Optional, Sequence

from absl import app as absl_app
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
import uvicorn

from storefront import config
from storefront.carriers import Address
from storefront.carriers import ShippoClient
from storefront.db import DatabaseManager
from storefront.exceptions import RateLimitedError
from storefront.exceptions import StorefrontError
from storefront.payments import PaymentGateway
from storefront.payments import StripeGateway
from storefront.ratelimit import SlidingWindowRateLimiter
from storefront.routes.admin import router as admin_router
from storefront.routes.cart import router as cart_router
from storefront.routes.checkout import router as checkout_router
from storefront.routes.orders import router as orders_router
from storefront.routes.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


async def storefront_exception_handler(request: Request, exc: StorefrontError):
  """Converts storefront exceptions to JSON responses."""
  del request  # Unused.
  headers = None
  if isinstance(exc, RateLimitedError):
    headers = {"Retry-After": str(exc.retry_after)}
  return JSONResponse(
      status_code=exc.status_code,
      content={"detail": exc.message, "code": exc.code},
      headers=headers,
  )


def create_app(
    settings: config.Settings,
    db_manager: Optional[DatabaseManager] = None,
    payment_gateway: Optional[PaymentGateway] = None,
    carrier_client: Optional[ShippoClient] = None,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
) -> FastAPI:
  """Builds the application with explicitly constructed collaborators.

  Args:
    settings: Runtime configuration.
    db_manager: Database handle; built from `settings.database_url` if absent.
    payment_gateway: Payment provider; Stripe if absent.
    carrier_client: Carrier aggregator client; Shippo if absent and an API
      key is configured, otherwise label purchasing is disabled.
    rate_limiter: Request limiter; built with the default limits when
      absent and `settings.rate_limit_enabled` is set.

  Returns:
    The FastAPI application.
  """
  if db_manager is None:
    db_manager = DatabaseManager(settings.database_url)
  if payment_gateway is None:
    payment_gateway = StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        app_url=settings.app_url,
        tolerance_seconds=settings.webhook_tolerance_seconds,
        timeout_seconds=settings.payment_timeout_seconds,
    )
  if carrier_client is None and settings.shippo_api_key:
    carrier_client = ShippoClient(
        api_key=settings.shippo_api_key,
        sender=Address(**settings.sender_address()),
        base_url=settings.shippo_base_url,
        timeout=settings.carrier_timeout_seconds,
    )
  if rate_limiter is None and settings.rate_limit_enabled:
    rate_limiter = SlidingWindowRateLimiter()

  app = FastAPI(
      title="Storefront Fulfillment Service",
      version=__version__,
      description="Checkout, payment webhooks, stock and shipping labels",
      lifespan=config.lifespan,
  )
  app.state.settings = settings
  app.state.db_manager = db_manager
  app.state.payment_gateway = payment_gateway
  app.state.carrier_client = carrier_client
  app.state.rate_limiter = rate_limiter

  app.add_exception_handler(StorefrontError, storefront_exception_handler)

  app.include_router(checkout_router)
  app.include_router(webhooks_router)
  app.include_router(cart_router)
  app.include_router(orders_router)
  app.include_router(admin_router)
  return app


def main(argv: Sequence[str]) -> None:
  """Main entry point for the storefront server."""
  del argv  # Unused.
  logging.basicConfig(level=logging.INFO)

  settings = config.Settings.from_flags()
  if settings.port is None:
    logger.error("--port must be provided.")
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)
  if not settings.stripe_webhook_secret:
    logger.warning(
        "--stripe_webhook_secret is not set; every webhook will be rejected"
    )

  uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
