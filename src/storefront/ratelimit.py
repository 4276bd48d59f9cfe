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

"""Per-client request rate limiting.

Each route family has a bucket with a sliding-window limit. Clients are keyed
by signed-in user id, falling back to the forwarded client address. Counters
live in process memory, so every server process enforces its own limits.
Limiting is off unless enabled in the settings.
"""

import collections
import dataclasses
import logging
import math
import time
from typing import Callable, Deque, Dict, Mapping, Optional, Tuple

from storefront.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RateLimit:
  limit: int
  window_seconds: float = 60.0


DEFAULT_LIMITS = {
    "api": RateLimit(60),
    "cart": RateLimit(30),
    "checkout": RateLimit(5),
    "admin": RateLimit(100),
    "guest_lookup": RateLimit(10),
}


def client_identifier(
    headers: Mapping[str, str],
    client_host: Optional[str],
    user_id: Optional[str] = None,
) -> str:
  """Names the caller for rate limiting purposes."""
  if user_id:
    return f"user:{user_id}"
  forwarded_for = headers.get("x-forwarded-for")
  if forwarded_for:
    return f"ip:{forwarded_for.split(',')[0].strip()}"
  real_ip = headers.get("x-real-ip")
  if real_ip:
    return f"ip:{real_ip.strip()}"
  return f"ip:{client_host or '127.0.0.1'}"


class SlidingWindowRateLimiter:
  """Counts hits per (bucket, client) over a trailing time window."""

  def __init__(
      self,
      limits: Optional[Mapping[str, RateLimit]] = None,
      clock: Callable[[], float] = time.monotonic,
      max_tracked_clients: int = 10000,
  ):
    self.limits = dict(DEFAULT_LIMITS if limits is None else limits)
    self._clock = clock
    self._max_tracked_clients = max_tracked_clients
    self._hits: Dict[Tuple[str, str], Deque[float]] = {}

  def check(self, bucket: str, identifier: str) -> None:
    """Records a hit for the client.

    Raises:
      RateLimitedError: If the client already used up the bucket's window.
        A rejected request is not counted.
    """
    rule = self.limits[bucket]
    now = self._clock()
    key = (bucket, identifier)
    hits = self._hits.get(key)
    if hits is None:
      if len(self._hits) >= self._max_tracked_clients:
        self._evict_idle(now)
      hits = self._hits[key] = collections.deque()

    while hits and hits[0] <= now - rule.window_seconds:
      hits.popleft()
    if len(hits) >= rule.limit:
      retry_after = max(1, math.ceil(hits[0] + rule.window_seconds - now))
      logger.warning(
          "Rate limit exceeded for %s on %s bucket", identifier, bucket
      )
      raise RateLimitedError(retry_after)
    hits.append(now)

  def _evict_idle(self, now: float) -> None:
    """Forgets clients with no hit inside their bucket's window."""
    for key, hits in list(self._hits.items()):
      if not hits or hits[-1] <= now - self.limits[key[0]].window_seconds:
        del self._hits[key]
