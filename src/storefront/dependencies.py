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

"""FastAPI dependencies for the storefront server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Database session management, one `AsyncSession` per request, drawn from
  the `DatabaseManager` the application factory stored on `app.state`.
- The identity boundary: the authenticating proxy asserts the shopper via
  `X-User-Id`, `X-User-Email` and `X-User-Name` headers.
- The operator boundary: `X-Operator-Key` must match the configured key.
- Per-client rate limits, when a limiter is configured.
- Service instantiation.
"""

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi import Header
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import db
from storefront import ratelimit
from storefront import validation
from storefront.config import Settings
from storefront.exceptions import ForbiddenError
from storefront.exceptions import InvalidRequestError
from storefront.exceptions import StorefrontError
from storefront.exceptions import UnauthorizedError
from storefront.models import Identity
from storefront.payments import PaymentGateway
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.shipping_broker import ShippingLabelBroker
from storefront.services.webhook_processor import WebhookProcessor


def get_settings(request: Request) -> Settings:
  return request.app.state.settings


def get_payment_gateway(request: Request) -> PaymentGateway:
  return request.app.state.payment_gateway


def get_label_broker(request: Request) -> Optional[ShippingLabelBroker]:
  carrier_client = request.app.state.carrier_client
  if carrier_client is None:
    return None
  return ShippingLabelBroker(carrier_client)


async def get_db_session(
    request: Request,
) -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for a request-scoped database session."""
  async with request.app.state.db_manager.session_factory() as session:
    yield session


async def get_optional_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_db_session),
) -> Optional[Identity]:
  """Resolves the signed-in shopper, if any, and refreshes their user row."""
  if not x_user_id:
    return None
  if not validation.is_valid_email(x_user_email):
    raise InvalidRequestError("User email not found")
  name = (x_user_name or "").strip() or None
  await db.upsert_user(session, x_user_id, x_user_email, name)
  await session.commit()
  return Identity(user_id=x_user_id, email=x_user_email.lower(), name=name)


async def get_identity(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> Identity:
  if identity is None:
    raise UnauthorizedError()
  return identity


async def verify_operator_key(
    request: Request,
    x_operator_key: Optional[str] = Header(None),
) -> None:
  """Verifies the shared key for operator endpoints."""
  expected_key = request.app.state.settings.operator_api_key
  if not expected_key:
    raise StorefrontError(
        "Operator key not configured", code="CONFIGURATION_ERROR"
    )
  if not x_operator_key or not hmac.compare_digest(
      x_operator_key.encode(), expected_key.encode()
  ):
    raise ForbiddenError("Invalid operator key")


def rate_limit(bucket: str, guest_bucket: Optional[str] = None):
  """Builds a dependency charging the caller against a rate limit bucket.

  Args:
    bucket: Bucket for signed-in callers, and for everyone when
      `guest_bucket` is not given.
    guest_bucket: Bucket for callers without an identity.
  """

  async def _check(
      request: Request, x_user_id: Optional[str] = Header(None)
  ) -> None:
    limiter = request.app.state.rate_limiter
    if limiter is None:
      return
    name = guest_bucket if guest_bucket and not x_user_id else bucket
    limiter.check(
        name,
        ratelimit.client_identifier(
            request.headers,
            request.client.host if request.client else None,
            x_user_id,
        ),
    )

  return _check


def get_cart_service(
    session: AsyncSession = Depends(get_db_session),
) -> CartService:
  return CartService(session)


def get_checkout_service(
    session: AsyncSession = Depends(get_db_session),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(session, payment_gateway, settings)


def get_webhook_processor(
    session: AsyncSession = Depends(get_db_session),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> WebhookProcessor:
  return WebhookProcessor(session, payment_gateway)


def get_order_service(
    session: AsyncSession = Depends(get_db_session),
    label_broker: Optional[ShippingLabelBroker] = Depends(get_label_broker),
) -> OrderService:
  """Dependency provider for OrderService."""
  return OrderService(session, label_broker)
