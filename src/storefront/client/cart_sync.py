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

"""Client-side cart state and the merge-once-per-client rule.

A guest cart is merged into an account only on the first sign-in on a given
client. Later sign-ins replace the local cart with the server's copy, so
items the shopper deliberately removed from their account cart are not
silently re-added from a stale browser cart. The flag lives with the client,
not the server: it prevents a nuisance, it is not a security boundary.
"""

import json
import logging
import os
from typing import List, Optional

from pydantic import BaseModel
from pydantic import Field

logger = logging.getLogger(__name__)


class LocalCartItem(BaseModel):
  id: str
  quantity: int


class CartSyncState(BaseModel):
  """Everything the client persists between runs."""

  items: List[LocalCartItem] = Field(default_factory=list)
  has_ever_synced: bool = False
  last_synced_user_id: Optional[str] = None

  def should_merge(self, user_id: str) -> bool:
    """True if signing in as `user_id` should push the local cart up."""
    if self.last_synced_user_id == user_id and self.has_ever_synced:
      return False
    return bool(self.items) and not self.has_ever_synced

  def prepare_sign_in(self, user_id: str) -> None:
    """Drops a different account's leftover cart before signing in."""
    if self.last_synced_user_id and self.last_synced_user_id != user_id:
      self.clear_local()

  def mark_synced(self, user_id: str) -> None:
    self.has_ever_synced = True
    self.last_synced_user_id = user_id

  def clear_local(self) -> None:
    """Forgets the local cart but keeps the sync history."""
    self.items = []
    self.last_synced_user_id = None

  def add_item(self, product_id: str, quantity: int = 1) -> None:
    for item in self.items:
      if item.id == product_id:
        item.quantity += quantity
        return
    self.items.append(LocalCartItem(id=product_id, quantity=quantity))

  @classmethod
  def load(cls, path: str) -> "CartSyncState":
    if not os.path.exists(path):
      return cls()
    with open(path, "r", encoding="utf-8") as f:
      return cls.model_validate(json.load(f))

  def save(self, path: str) -> None:
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
      json.dump(self.model_dump(), f, indent=2)
    os.replace(tmp_path, path)
