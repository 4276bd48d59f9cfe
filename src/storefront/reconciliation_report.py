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

"""Utility script to list orders that need a human.

Two kinds of orders are reported, in CSV format on standard output:

- `needs_reconciliation`: payment was captured but stock could not be taken
  (or a payment landed on an already cancelled order).
- `abandoned`: PENDING orders older than --max_pending_age_hours whose
  payment session was never completed.

Nothing is modified; deciding on refunds, restocks or cleanup is left to the
operator.

Usage:
  python -m storefront.reconciliation_report --database_url=...
"""

import asyncio
import csv
import datetime
import sys
from typing import List, Optional

from absl import app as absl_app
from absl import flags
from sqlalchemy import or_
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import config
from storefront import db
from storefront.enums import OrderStatus

FLAGS = config.FLAGS
flags.DEFINE_integer(
    "max_pending_age_hours",
    24,
    "PENDING orders older than this are reported as abandoned",
)

COLUMNS = [
    "order_id",
    "reason",
    "status",
    "customer_email",
    "total_cents",
    "payment_reference",
    "created_at",
]


async def collect_report(
    session: AsyncSession,
    max_pending_age: datetime.timedelta,
    now: Optional[datetime.datetime] = None,
) -> List[List[str]]:
  """Returns one CSV row per order needing attention, oldest first."""
  cutoff = (now or db.utcnow()) - max_pending_age
  result = await session.execute(
      select(db.Order)
      .where(
          or_(
              db.Order.needs_reconciliation.is_(True),
              (db.Order.status == OrderStatus.PENDING)
              & (db.Order.created_at < cutoff),
          )
      )
      .order_by(db.Order.created_at)
  )
  rows = []
  for order in result.scalars().all():
    reason = (
        "needs_reconciliation" if order.needs_reconciliation else "abandoned"
    )
    rows.append([
        order.id,
        reason,
        order.status.value,
        order.customer_email,
        str(order.total_cents),
        order.payment_reference or "",
        order.created_at.isoformat(),
    ])
  return rows


async def print_report() -> None:
  db_manager = db.DatabaseManager(FLAGS.database_url)
  await db_manager.init_db()
  try:
    async with db_manager.session_factory() as session:
      rows = await collect_report(
          session, datetime.timedelta(hours=FLAGS.max_pending_age_hours)
      )
  finally:
    await db_manager.close()

  writer = csv.writer(sys.stdout)
  writer.writerow(COLUMNS)
  writer.writerows(rows)


def main(argv):
  """Main entry point for the reconciliation report."""
  del argv  # Unused.
  asyncio.run(print_report())


if __name__ == "__main__":
  absl_app.run(main)
