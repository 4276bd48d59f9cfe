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

"""Catalogue seeding script for the storefront server.

This script imports categories, products and sales from CSV files into the
configured database. It clears the existing catalogue before populating it
with the new dataset. Carts holding deleted products are cleared with them.

Usage:
  python -m storefront.import_csv --database_url=... --data_dir=...
"""

import asyncio
import csv
import datetime
import logging
import os

from absl import app as absl_app
from absl import flags
from sqlalchemy import delete

from storefront import config
from storefront.db import Category
from storefront.db import DatabaseManager
from storefront.db import Product
from storefront.db import Sale
from storefront.db import SaleCategory

FLAGS = config.FLAGS
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing categories.csv, products.csv and sales.csv",
)

logger = logging.getLogger(__name__)


def _optional_int(value):
  return int(value) if value not in (None, "") else None


def _utc(value):
  parsed = datetime.datetime.fromisoformat(value)
  if parsed.tzinfo is not None:
    parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
  return parsed


def _read_rows(path):
  with open(path, "r", newline="") as f:
    return list(csv.DictReader(f))


async def import_csv_data(db_manager: DatabaseManager, data_dir: str) -> None:
  """Reads CSV files and replaces the catalogue with their contents."""
  if not db_manager.initialized:
    await db_manager.init_db()

  async with db_manager.session_factory() as session:
    logger.info("Clearing existing catalogue...")
    await session.execute(delete(SaleCategory))
    await session.execute(delete(Sale))
    await session.execute(delete(Product))
    await session.execute(delete(Category))

    logger.info("Importing Categories from CSV...")
    categories_path = os.path.join(data_dir, "categories.csv")
    if os.path.exists(categories_path):
      session.add_all(
          Category(id=row["id"], name=row["name"])
          for row in _read_rows(categories_path)
      )
      await session.flush()

    logger.info("Importing Products from CSV...")
    products = []
    for row in _read_rows(os.path.join(data_dir, "products.csv")):
      products.append(
          Product(
              id=row["id"],
              name=row["name"],
              price_cents=int(row["price_cents"]),
              discount_percent=_optional_int(row.get("discount_percent")),
              stock=int(row["stock"]),
              category_id=row.get("category_id") or None,
              image_url=row.get("image_url") or None,
          )
      )
    session.add_all(products)
    await session.flush()

    logger.info("Importing Sales from CSV...")
    sales_path = os.path.join(data_dir, "sales.csv")
    if os.path.exists(sales_path):
      for row in _read_rows(sales_path):
        sale = Sale(
            id=row["id"],
            name=row["name"],
            discount_percent=int(row["discount_percent"]),
            starts_at=_utc(row["starts_at"]),
            ends_at=_utc(row["ends_at"]),
            is_active=row.get("is_active", "true").lower() == "true",
        )
        sale.categories = [
            SaleCategory(category_id=category_id)
            for category_id in row["category_ids"].split(";")
            if category_id
        ]
        session.add(sale)

    await session.commit()
  logger.info("Imported %d products", len(products))


async def _run() -> None:
  db_manager = DatabaseManager(FLAGS.database_url)
  try:
    await import_csv_data(db_manager, FLAGS.data_dir)
  finally:
    await db_manager.close()


def main(argv):
  """Main entry point for the catalogue import script."""
  del argv  # Unused.
  logging.basicConfig(level=logging.INFO)
  asyncio.run(_run())


if __name__ == "__main__":
  absl_app.run(main)
