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

"""Order lifecycle state machine.

    PENDING -> PROCESSING -> SHIPPED -> DELIVERED
    PENDING, PROCESSING -> CANCELLED
    PROCESSING, SHIPPED -> REFUNDED (operator only)

DELIVERED, CANCELLED and REFUNDED are terminal. Payment webhooks can arrive
late, twice, or out of order, so a transition the payment provider asks for
that the lifecycle does not allow is logged and ignored. The same request
from an operator is an error the operator should see.
"""

import logging
from typing import Dict, FrozenSet

from storefront import db
from storefront.enums import OrderStatus
from storefront.enums import TransitionActor
from storefront.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.CANCELLED}
    ),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    }),
    OrderStatus.SHIPPED: frozenset(
        {OrderStatus.DELIVERED, OrderStatus.REFUNDED}
    ),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

OPERATOR_ONLY = frozenset({OrderStatus.REFUNDED})

TERMINAL_STATES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
  return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


class OrderStateMachine:
  """Applies lifecycle transitions to order rows in the caller's session."""

  def advance(
      self,
      order: db.Order,
      target: OrderStatus,
      actor: TransitionActor,
  ) -> bool:
    """Moves `order` to `target` if the lifecycle allows it.

    Args:
      order: The order row; mutated in place, not committed.
      target: The requested status.
      actor: Who is asking.

    Returns:
      True if the status changed, False for an ignored request.

    Raises:
      InvalidTransitionError: If an operator asks for a forbidden move.
    """
    current = OrderStatus(order.status)
    target = OrderStatus(target)
    if current == target:
      return False

    allowed = can_transition(current, target)
    if allowed and target in OPERATOR_ONLY:
      allowed = actor == TransitionActor.OPERATOR

    if not allowed:
      if actor == TransitionActor.OPERATOR:
        raise InvalidTransitionError(
            f"Cannot change order {order.id} from {current.value} to"
            f" {target.value}"
        )
      logger.warning(
          "Ignoring %s transition of order %s from %s to %s",
          actor.value,
          order.id,
          current.value,
          target.value,
      )
      return False

    order.status = target
    now = db.utcnow()
    if target == OrderStatus.SHIPPED:
      order.shipped_at = now
    elif target == OrderStatus.DELIVERED:
      order.delivered_at = now
    logger.info(
        "Order %s moved from %s to %s by %s",
        order.id,
        current.value,
        target.value,
        actor.value,
    )
    return True
