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

"""Shared fixtures for the storefront tests.

Every test gets its own SQLite file in a temporary directory. Async database
work is driven with `asyncio.run`, one event loop per call, so the engine uses
`NullPool` and never hands a connection to a loop that did not open it.
"""

import asyncio
import datetime
import hashlib
import hmac
import json
import os
import shutil
import tempfile
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from absl.testing import absltest
import httpx
from sqlalchemy import select
from sqlalchemy.pool import NullPool

from storefront import db
from storefront.carriers import Address
from storefront.carriers import ShippoClient
from storefront.enums import OrderStatus
from storefront.exceptions import PaymentGatewayError
from storefront.payments import PaymentSession
from storefront.payments import StripeGateway
from storefront.pricing import PricedLine

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(
    payload: bytes,
    secret: str = WEBHOOK_SECRET,
    timestamp: Optional[int] = None,
) -> str:
  """Builds a `Stripe-Signature` header value for `payload`."""
  timestamp = int(time.time()) if timestamp is None else timestamp
  signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
  digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
  return f"t={timestamp},v1={digest}"


def session_event(
    event_type: str,
    order_id: Optional[str],
    event_id: str = "evt_1",
    session_id: str = "cs_test_1",
    payment_status: str = "paid",
    customer_email: Optional[str] = None,
    with_address: bool = True,
) -> Dict[str, Any]:
  """Builds a checkout session event as the payment provider sends it."""
  metadata = {}
  if order_id is not None:
    metadata["orderId"] = order_id
  checkout_session = {
      "id": session_id,
      "object": "checkout.session",
      "metadata": metadata,
      "payment_intent": "pi_test_1",
      "payment_status": payment_status,
      "customer_email": customer_email,
  }
  if with_address:
    checkout_session["collected_information"] = {
        "shipping_details": {
            "name": "Ada Lovelace",
            "address": {
                "line1": "1 Main St",
                "line2": None,
                "city": "Springfield",
                "state": "IL",
                "postal_code": "62701",
                "country": "US",
            },
        }
    }
  return {
      "id": event_id,
      "object": "event",
      "type": event_type,
      "created": int(time.time()),
      "data": {"object": checkout_session},
  }


def encode(event: Dict[str, Any]) -> bytes:
  return json.dumps(event).encode("utf-8")


class FakePaymentGateway:
  """Records session requests; verifies signatures like the real gateway."""

  def __init__(self, webhook_secret: Optional[str] = WEBHOOK_SECRET):
    self.sessions: List[Dict[str, Any]] = []
    self.fail = False
    self._verifier = StripeGateway(
        api_key=None, webhook_secret=webhook_secret, app_url="http://test"
    )

  async def create_session(
      self,
      *,
      customer_email: str,
      lines: List[PricedLine],
      shipping_cents: int,
      metadata: Dict[str, str],
  ) -> PaymentSession:
    if self.fail:
      raise PaymentGatewayError("Failed to create checkout session")
    session_id = f"cs_test_{len(self.sessions) + 1}"
    self.sessions.append({
        "id": session_id,
        "customer_email": customer_email,
        "lines": lines,
        "shipping_cents": shipping_cents,
        "metadata": metadata,
    })
    return PaymentSession(id=session_id, url=f"https://pay.test/{session_id}")

  def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
    self._verifier.verify_signature(payload, signature)


class StorefrontTestCase(absltest.TestCase):
  """Base class providing a seeded, throwaway database."""

  def setUp(self) -> None:
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    database_path = os.path.join(self.test_dir, "storefront_test.db")
    self.db_manager = db.DatabaseManager(
        f"sqlite+aiosqlite:///{database_path}", poolclass=NullPool
    )
    asyncio.run(self.db_manager.init_db())
    asyncio.run(self._seed_catalog())

  def tearDown(self) -> None:
    asyncio.run(self.db_manager.close())
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def session(self):
    return self.db_manager.session_factory()

  async def _seed_catalog(self) -> None:
    async with self.session() as session:
      session.add_all([
          db.Category(id="bouquets", name="Bouquets"),
          db.Category(id="plants", name="Plants"),
      ])
      await session.flush()
      session.add_all([
          db.Product(
              id="rose",
              name="Red Rose",
              price_cents=1000,
              stock=5,
              category_id="bouquets",
              image_url="http://rose.example",
          ),
          db.Product(
              id="tulip",
              name="White Tulip",
              price_cents=800,
              stock=2,
              category_id="plants",
          ),
          db.Product(id="vase", name="Glass Vase", price_cents=2500, stock=1),
          db.Product(id="orchid", name="Orchid", price_cents=3000, stock=0),
      ])
      await session.commit()

  def add_sale(
      self,
      category_id: str,
      discount_percent: int,
      starts_at: Optional[datetime.datetime] = None,
      ends_at: Optional[datetime.datetime] = None,
      is_active: bool = True,
  ) -> None:
    now = db.utcnow()

    async def _add() -> None:
      async with self.session() as session:
        sale = db.Sale(
            name=f"{discount_percent}% off {category_id}",
            discount_percent=discount_percent,
            starts_at=starts_at or now - datetime.timedelta(days=1),
            ends_at=ends_at or now + datetime.timedelta(days=1),
            is_active=is_active,
        )
        sale.categories = [db.SaleCategory(category_id=category_id)]
        session.add(sale)
        await session.commit()

    asyncio.run(_add())

  def add_user(self, user_id: str, email: str) -> None:
    async def _add() -> None:
      async with self.session() as session:
        await db.upsert_user(session, user_id, email, None)
        await session.commit()

    asyncio.run(_add())

  def add_cart_item(self, user_id: str, product_id: str, quantity: int) -> None:
    async def _add() -> None:
      async with self.session() as session:
        session.add(
            db.CartItem(
                user_id=user_id, product_id=product_id, quantity=quantity
            )
        )
        await session.commit()

    asyncio.run(_add())

  def add_order(
      self,
      lines: Sequence[Tuple[str, int]],
      status: OrderStatus = OrderStatus.PENDING,
      user_id: Optional[str] = None,
      email: str = "buyer@example.com",
      guest_token: Optional[str] = None,
      **fields: Any,
  ) -> str:
    """Inserts an order snapshot at catalogue prices; returns its id."""

    async def _add() -> str:
      async with self.session() as session:
        products = await db.get_products_by_ids(
            session, [product_id for product_id, _ in lines]
        )
        items = [
            db.OrderItem(
                product_id=product_id,
                name=products[product_id].name,
                unit_price_cents=products[product_id].price_cents,
                original_price_cents=products[product_id].price_cents,
                discount_percent=0,
                quantity=quantity,
            )
            for product_id, quantity in lines
        ]
        total = sum(i.unit_price_cents * i.quantity for i in items)
        order = db.Order(
            user_id=user_id,
            is_guest=user_id is None,
            guest_token=guest_token,
            customer_email=email,
            subtotal_cents=total,
            shipping_cents=0,
            total_cents=total,
            status=status,
            items=items,
            **fields,
        )
        session.add(order)
        await session.commit()
        return order.id

    return asyncio.run(_add())

  def stock_of(self, product_id: str) -> Optional[int]:
    async def _get() -> Optional[int]:
      async with self.session() as session:
        return await db.get_stock(session, product_id)

    return asyncio.run(_get())

  def load_order(self, order_id: str) -> Optional[db.Order]:
    async def _get() -> Optional[db.Order]:
      async with self.session() as session:
        return await db.get_order(session, order_id)

    return asyncio.run(_get())

  def cart_quantities(self, user_id: str) -> Dict[str, int]:
    async def _get() -> Dict[str, int]:
      async with self.session() as session:
        items = await db.get_cart_items(session, user_id)
        return {item.product_id: item.quantity for item in items}

    return asyncio.run(_get())

  def processed_event_count(self) -> int:
    async def _count() -> int:
      async with self.session() as session:
        result = await session.execute(select(db.ProcessedWebhookEvent))
        return len(result.scalars().all())

    return asyncio.run(_count())


def rate_json(object_id: str, provider: str, amount: str, **extra: Any):
  """A rate object as Shippo returns it inside a shipment."""
  return {
      "object_id": object_id,
      "provider": provider,
      "servicelevel": {"name": "Ground"},
      "amount": amount,
      "currency": "USD",
      **extra,
  }


class FakeShippo:
  """A scripted Shippo API, used as an `httpx.MockTransport` handler."""

  def __init__(self):
    self.address_valid = True
    self.rates: List[Dict[str, Any]] = []
    # Rate id to transaction response body, an HTTP status to fail with, or
    # a canned response.
    self.transactions: Dict[str, Any] = {}
    self.purchased: List[str] = []

  def __call__(self, request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if request.url.path == "/addresses/":
      return httpx.Response(
          201,
          json={
              "validation_results": {
                  "is_valid": self.address_valid,
                  "messages": [] if self.address_valid else [
                      {"type": "address_error", "text": "Unknown street"}
                  ],
              }
          },
      )
    if request.url.path == "/shipments/":
      return httpx.Response(201, json={"rates": self.rates})
    if request.url.path == "/transactions/":
      self.purchased.append(body["rate"])
      outcome = self.transactions[body["rate"]]
      if isinstance(outcome, httpx.Response):
        return outcome
      if isinstance(outcome, int):
        return httpx.Response(outcome, json={"detail": "Account not enabled"})
      return httpx.Response(201, json=outcome)
    return httpx.Response(404)

  def client(self) -> ShippoClient:
    return ShippoClient(
        api_key="shippo_test_key",
        sender=Address(
            name="Storefront",
            street1="100 Warehouse Rd",
            city="Austin",
            state="TX",
            zip="73301",
        ),
        transport=httpx.MockTransport(self),
    )
