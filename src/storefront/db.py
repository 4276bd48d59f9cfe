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

"""Database management and persistence layer for the storefront engine.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the services. It utilizes SQLAlchemy
with SQLite (via aiosqlite). Catalogue, carts, orders and the webhook
idempotency ledger share one database so that a stock decrement, an order
transition and the dedupe record can commit in a single transaction.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup. It is constructed explicitly by the application factory and
  handed to whoever needs it; there is no module-level instance.
- SQLite transaction control: every transaction starts with
  `BEGIN IMMEDIATE`, so transactions serialize on the database lock and
  SAVEPOINTs behave. Read-only requests take the lock too; transactions
  are kept short. WAL mode only keeps connections outside a transaction
  (such as `sqlite3` shells) from blocking on a writer.
- Declarative Models: products, categories, sales, users, cart items,
  orders, order item snapshots and processed webhook events.
- Data Access Helpers: small async functions for the queries the services
  share.
"""

import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional
import uuid

from sqlalchemy import Boolean
from sqlalchemy import CheckConstraint
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum
from sqlalchemy import event
from sqlalchemy import ForeignKey
from sqlalchemy import func
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.orm import sessionmaker

from storefront.enums import OrderStatus
from storefront.enums import ShippingCarrier

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime.datetime:
  """Naive UTC timestamp; SQLite stores datetimes without an offset."""
  return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
  return str(uuid.uuid4())


def _configure_sqlite(engine: AsyncEngine) -> None:
  """Takes over transaction demarcation from the sqlite3 driver."""

  @event.listens_for(engine.sync_engine, "connect")
  def _on_connect(dbapi_connection, connection_record):
    del connection_record  # Unused.
    # Stop the driver from emitting its own deferred BEGIN.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()

  @event.listens_for(engine.sync_engine, "begin")
  def _on_begin(conn):
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseManager:
  """Manages the database engine and sessions without using global variables."""

  def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
    self.database_url = database_url
    self._engine_kwargs = engine_kwargs
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  @property
  def initialized(self) -> bool:
    return self.session_factory is not None

  async def init_db(self) -> None:
    """Initializes the database engine and creates tables."""
    self.engine = create_async_engine(
        self.database_url, echo=False, **self._engine_kwargs
    )
    if self.engine.dialect.name == "sqlite":
      _configure_sqlite(self.engine)

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready at %s", self.database_url)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()
    self.engine = None
    self.session_factory = None


class User(Base):
  __tablename__ = "users"

  id = Column(String, primary_key=True)
  # Cleared when the identity provider hands the address to another account.
  email = Column(String, unique=True, index=True, nullable=True)
  name = Column(String, nullable=True)


class Category(Base):
  __tablename__ = "categories"

  id = Column(String, primary_key=True, default=_new_id)
  name = Column(String, nullable=False)


class Product(Base):
  __tablename__ = "products"
  __table_args__ = (
      CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
  )

  id = Column(String, primary_key=True, default=_new_id)
  name = Column(String, nullable=False)
  price_cents = Column(Integer, nullable=False)
  discount_percent = Column(Integer, nullable=True)
  # Mutated only through services.stock_ledger.
  stock = Column(Integer, nullable=False, default=0)
  category_id = Column(String, ForeignKey("categories.id"), nullable=True)
  image_url = Column(String, nullable=True)


class Sale(Base):
  """A time-bounded percentage promotion attached to categories."""

  __tablename__ = "sales"

  id = Column(String, primary_key=True, default=_new_id)
  name = Column(String, nullable=False)
  discount_percent = Column(Integer, nullable=False)
  starts_at = Column(DateTime, nullable=False, default=utcnow)
  ends_at = Column(DateTime, nullable=False)
  is_active = Column(Boolean, nullable=False, default=True)

  categories = relationship(
      "SaleCategory", back_populates="sale", cascade="all, delete-orphan"
  )


class SaleCategory(Base):
  __tablename__ = "sale_categories"
  __table_args__ = (UniqueConstraint("sale_id", "category_id"),)

  id = Column(Integer, primary_key=True, autoincrement=True)
  sale_id = Column(
      String, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False
  )
  category_id = Column(
      String, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
  )

  sale = relationship("Sale", back_populates="categories")


class CartItem(Base):
  __tablename__ = "cart_items"
  __table_args__ = (UniqueConstraint("user_id", "product_id"),)

  id = Column(Integer, primary_key=True, autoincrement=True)
  user_id = Column(
      String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
  )
  product_id = Column(
      String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
  )
  quantity = Column(Integer, nullable=False)
  created_at = Column(DateTime, nullable=False, default=utcnow)
  updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Order(Base):
  __tablename__ = "orders"

  id = Column(String, primary_key=True, default=_new_id)
  user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
  is_guest = Column(Boolean, nullable=False, default=False)
  guest_token = Column(String, unique=True, nullable=True)
  customer_email = Column(String, nullable=False, index=True)
  customer_name = Column(String, nullable=True)
  subtotal_cents = Column(Integer, nullable=False)
  shipping_cents = Column(Integer, nullable=False, default=0)
  total_cents = Column(Integer, nullable=False)
  status = Column(
      Enum(OrderStatus, native_enum=False, length=20),
      nullable=False,
      default=OrderStatus.PENDING,
      index=True,
  )
  payment_session_id = Column(String, unique=True, nullable=True)
  payment_reference = Column(String, nullable=True)
  shipping_address = Column(JSON, nullable=True)
  tracking_number = Column(String, nullable=True, index=True)
  shipping_carrier = Column(
      Enum(ShippingCarrier, native_enum=False, length=10), nullable=True
  )
  shipped_at = Column(DateTime, nullable=True)
  delivered_at = Column(DateTime, nullable=True)
  stock_committed = Column(Boolean, nullable=False, default=False)
  needs_reconciliation = Column(Boolean, nullable=False, default=False)
  created_at = Column(DateTime, nullable=False, default=utcnow)
  updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

  items = relationship(
      "OrderItem",
      back_populates="order",
      lazy="selectin",
      order_by="OrderItem.id",
      cascade="all, delete-orphan",
  )


class OrderItem(Base):
  """Immutable snapshot of a line at order creation time."""

  __tablename__ = "order_items"

  id = Column(Integer, primary_key=True, autoincrement=True)
  order_id = Column(
      String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
  )
  # Not a foreign key: history must survive product deletion.
  product_id = Column(String, nullable=False)
  name = Column(String, nullable=False)
  unit_price_cents = Column(Integer, nullable=False)
  original_price_cents = Column(Integer, nullable=False)
  discount_percent = Column(Integer, nullable=False, default=0)
  quantity = Column(Integer, nullable=False)
  image_url = Column(String, nullable=True)

  order = relationship("Order", back_populates="items")


class ProcessedWebhookEvent(Base):
  __tablename__ = "processed_webhook_events"

  event_id = Column(String, primary_key=True)
  event_type = Column(String, nullable=False)
  processed_at = Column(DateTime, nullable=False, default=utcnow)


# --- Data Access Helpers ---


async def get_product(
    session: AsyncSession, product_id: str
) -> Optional[Product]:
  """Retrieves a product by ID."""
  return await session.get(Product, product_id)


async def get_products_by_ids(
    session: AsyncSession, product_ids: Iterable[str]
) -> Dict[str, Product]:
  """Retrieves multiple products in a single query, keyed by ID."""
  ids = list(set(product_ids))
  if not ids:
    return {}
  result = await session.execute(select(Product).where(Product.id.in_(ids)))
  return {p.id: p for p in result.scalars().all()}


async def get_stock(session: AsyncSession, product_id: str) -> Optional[int]:
  """Retrieves the current stock level for a product."""
  result = await session.execute(
      select(Product.stock).where(Product.id == product_id)
  )
  return result.scalar_one_or_none()


async def get_category_discount_map(
    session: AsyncSession, now: Optional[datetime.datetime] = None
) -> Dict[str, int]:
  """Maps category IDs to the highest active sale discount covering them.

  Args:
    session: The database session to use.
    now: Reference time; defaults to the current UTC time.

  Returns:
    A dict of category ID to discount percentage.
  """
  now = now or utcnow()
  result = await session.execute(
      select(SaleCategory.category_id, func.max(Sale.discount_percent))
      .join(Sale, Sale.id == SaleCategory.sale_id)
      .where(Sale.is_active.is_(True))
      .where(Sale.starts_at <= now)
      .where(Sale.ends_at > now)
      .group_by(SaleCategory.category_id)
  )
  return {category_id: discount for category_id, discount in result.all()}


async def get_user_by_email(
    session: AsyncSession, email: str
) -> Optional[User]:
  """Retrieves a user by email (case-insensitive)."""
  result = await session.execute(
      select(User).where(User.email == email.strip().lower())
  )
  return result.scalar_one_or_none()


async def upsert_user(
    session: AsyncSession, user_id: str, email: str, name: Optional[str]
) -> User:
  """Creates or refreshes the local copy of an authenticated identity.

  The identity provider is authoritative for email ownership: if another
  local user still holds `email`, that stale copy loses it.
  """
  email = email.strip().lower()
  previous_owner = await get_user_by_email(session, email)
  if previous_owner is not None and previous_owner.id != user_id:
    logger.warning(
        "Email of user %s now belongs to user %s; clearing stale copy",
        previous_owner.id,
        user_id,
    )
    previous_owner.email = None
    await session.flush()

  user = await session.get(User, user_id)
  if user:
    user.email = email
    user.name = name
  else:
    user = User(id=user_id, email=email, name=name)
    session.add(user)
  await session.flush()
  return user


async def get_cart_items(
    session: AsyncSession, user_id: str
) -> List[CartItem]:
  """Retrieves a user's cart rows in insertion order."""
  result = await session.execute(
      select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id)
  )
  return list(result.scalars().all())


async def get_cart_item(
    session: AsyncSession, user_id: str, product_id: str
) -> Optional[CartItem]:
  """Retrieves a single cart row for a (user, product) pair."""
  result = await session.execute(
      select(CartItem).where(
          CartItem.user_id == user_id, CartItem.product_id == product_id
      )
  )
  return result.scalar_one_or_none()


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
  """Retrieves an order (with its items) by ID."""
  return await session.get(Order, order_id)


async def get_guest_order(
    session: AsyncSession, order_id: str, email: str, guest_token: str
) -> Optional[Order]:
  """Retrieves an order only if the (email, guest token) pair matches."""
  result = await session.execute(
      select(Order).where(
          Order.id == order_id,
          Order.guest_token == guest_token,
          func.lower(Order.customer_email) == email.strip().lower(),
      )
  )
  return result.scalar_one_or_none()


async def get_order_by_guest_token(
    session: AsyncSession, guest_token: str
) -> Optional[Order]:
  """Retrieves the order a guest token was issued for."""
  result = await session.execute(
      select(Order).where(Order.guest_token == guest_token)
  )
  return result.scalar_one_or_none()
