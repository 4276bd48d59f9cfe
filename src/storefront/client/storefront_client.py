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

"""HTTP client for the storefront API with a persistent local cart.

This client plays the part of the shopper's browser: it keeps a guest cart
on disk, pushes it to the server once on the first sign-in, and otherwise
treats the server cart as authoritative.

Usage:
  python -m storefront.client.storefront_client \
    --server_url=http://localhost:8182 --state_path=cart.json
"""

import logging
from typing import Any, Dict, List, Optional

from absl import app as absl_app
from absl import flags
import httpx

from storefront.client.cart_sync import CartSyncState

logger = logging.getLogger(__name__)


class StorefrontClient:
  """Shopper-side client; one instance per simulated browser."""

  def __init__(
      self,
      server_url: str,
      state_path: Optional[str] = None,
      transport: Optional[httpx.BaseTransport] = None,
  ):
    self._http = httpx.Client(
        base_url=server_url, timeout=10.0, transport=transport
    )
    self._state_path = state_path
    self.state = (
        CartSyncState.load(state_path) if state_path else CartSyncState()
    )
    self._identity_headers: Dict[str, str] = {}

  def close(self) -> None:
    self._http.close()

  def _persist(self) -> None:
    if self._state_path:
      self.state.save(self._state_path)

  @property
  def signed_in(self) -> bool:
    return bool(self._identity_headers)

  def add_to_cart(self, product_id: str, quantity: int = 1) -> None:
    """Adds to the local cart, or to the server cart when signed in."""
    if self.signed_in:
      for _ in range(quantity):
        response = self._http.post(
            "/cart",
            json={"productId": product_id},
            headers=self._identity_headers,
        )
        response.raise_for_status()
      return
    self.state.add_item(product_id, quantity)
    self._persist()

  def fetch_cart(self) -> List[Dict[str, Any]]:
    response = self._http.get("/cart", headers=self._identity_headers)
    response.raise_for_status()
    return response.json()

  def sign_in(
      self, user_id: str, email: str, name: Optional[str] = None
  ) -> List[Dict[str, Any]]:
    """Signs in, merging the guest cart only on this client's first sign-in.

    Returns:
      The account cart as the server now holds it.
    """
    self._identity_headers = {"X-User-Id": user_id, "X-User-Email": email}
    if name:
      self._identity_headers["X-User-Name"] = name

    self.state.prepare_sign_in(user_id)
    if self.state.should_merge(user_id):
      response = self._http.post(
          "/cart/sync",
          json={"items": [item.model_dump() for item in self.state.items]},
          headers=self._identity_headers,
      )
      response.raise_for_status()
      result = response.json()
      logger.info(
          "Merged guest cart: %s synced, %s skipped",
          result["synced"],
          result["skipped"],
      )

    cart = self.fetch_cart()
    self.state.items = []
    self.state.mark_synced(user_id)
    self._persist()
    return cart

  def sign_out(self) -> None:
    self._identity_headers = {}
    self.state.clear_local()
    self._persist()

  def checkout(
      self, email: Optional[str] = None, name: Optional[str] = None
  ) -> Dict[str, Any]:
    """Starts checkout; guests send their local cart and contact details."""
    if self.signed_in:
      body = {}
    else:
      body = {
          "email": email,
          "name": name,
          "items": [item.model_dump() for item in self.state.items],
      }
    response = self._http.post(
        "/checkout", json=body, headers=self._identity_headers
    )
    response.raise_for_status()
    return response.json()

  def track_order(
      self,
      order_id: str,
      email: Optional[str] = None,
      guest_token: Optional[str] = None,
  ) -> Dict[str, Any]:
    params = {}
    if email and guest_token:
      params = {"email": email, "guestToken": guest_token}
    response = self._http.get(
        f"/orders/{order_id}/tracking",
        params=params,
        headers=self._identity_headers,
    )
    response.raise_for_status()
    return response.json()


FLAGS = flags.FLAGS
flags.DEFINE_string("server_url", "http://localhost:8182", "Storefront URL")
flags.DEFINE_string("state_path", "cart_state.json", "Local cart state file")
flags.DEFINE_string("user_id", None, "Sign in as this user after filling cart")
flags.DEFINE_string("email", "shopper@example.com", "Shopper email")
flags.DEFINE_multi_string("add", [], "Product ID to add to the guest cart")


def main(argv) -> None:
  """Fills a guest cart, optionally signs in, and prints the result."""
  del argv  # Unused.
  logging.basicConfig(level=logging.INFO)
  client = StorefrontClient(FLAGS.server_url, FLAGS.state_path)
  try:
    for product_id in FLAGS.add:
      client.add_to_cart(product_id)
    if FLAGS.user_id:
      cart = client.sign_in(FLAGS.user_id, FLAGS.email)
      logger.info("Account cart: %s", cart)
    else:
      logger.info("Guest cart: %s", client.state.items)
  finally:
    client.close()


if __name__ == "__main__":
  absl_app.run(main)
