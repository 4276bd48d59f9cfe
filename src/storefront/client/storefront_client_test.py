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

"""Tests for the shopper client's sign-in flow."""

import json
import os
import shutil
import tempfile

from absl.testing import absltest
import httpx

from storefront.client.storefront_client import StorefrontClient


class FakeStorefront:
  """Keeps one account cart and records every request."""

  def __init__(self):
    self.requests = []
    self.cart = {}

  def __call__(self, request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content) if request.content else None
    self.requests.append((request.method, request.url.path, body))
    if request.url.path == "/cart/sync":
      for item in body["items"]:
        self.cart[item["id"]] = self.cart.get(item["id"], 0) + item["quantity"]
      return httpx.Response(
          200,
          json={
              "success": True,
              "synced": len(body["items"]),
              "skipped": 0,
              "errors": [],
          },
      )
    if request.url.path == "/cart" and request.method == "GET":
      return httpx.Response(
          200,
          json=[{"id": k, "quantity": v} for k, v in sorted(self.cart.items())],
      )
    if request.url.path == "/checkout":
      return httpx.Response(200, json={"sessionId": "cs_1", "url": "u"})
    return httpx.Response(404, json={"detail": "Not found"})

  def paths(self):
    return [path for _, path, _ in self.requests]


class StorefrontClientTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.server = FakeStorefront()
    test_dir = tempfile.mkdtemp()
    self.addCleanup(shutil.rmtree, test_dir)
    self.state_path = os.path.join(test_dir, "cart.json")

  def _client(self) -> StorefrontClient:
    client = StorefrontClient(
        "http://shop.test",
        state_path=self.state_path,
        transport=httpx.MockTransport(self.server),
    )
    self.addCleanup(client.close)
    return client

  def test_first_sign_in_merges_once(self) -> None:
    client = self._client()
    client.add_to_cart("rose", 2)

    cart = client.sign_in("user_1", "ada@example.com")

    self.assertEqual(cart, [{"id": "rose", "quantity": 2}])
    self.assertEqual(self.server.paths(), ["/cart/sync", "/cart"])
    self.assertEqual(
        self.server.requests[0][2], {"items": [{"id": "rose", "quantity": 2}]}
    )

  def test_returning_shopper_does_not_re_add_removed_items(self) -> None:
    client = self._client()
    client.add_to_cart("rose", 1)
    client.sign_in("user_1", "ada@example.com")
    client.sign_out()
    # The shopper emptied their account cart on another device.
    self.server.cart.clear()

    browser = self._client()
    browser.add_to_cart("tulip", 1)
    cart = browser.sign_in("user_1", "ada@example.com")

    self.assertEqual(cart, [])
    self.assertEqual(self.server.paths().count("/cart/sync"), 1)

  def test_guest_checkout_sends_local_items(self) -> None:
    client = self._client()
    client.add_to_cart("rose", 3)
    response = client.checkout(email="guest@example.com", name="Guest")
    self.assertEqual(response["sessionId"], "cs_1")
    _, _, body = self.server.requests[-1]
    self.assertEqual(
        body,
        {
            "email": "guest@example.com",
            "name": "Guest",
            "items": [{"id": "rose", "quantity": 3}],
        },
    )


if __name__ == "__main__":
  absltest.main()
