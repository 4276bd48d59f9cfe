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

"""Checkout routes for the storefront server."""

from typing import Optional

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends

from storefront import dependencies
from storefront.models import CheckoutRequest
from storefront.models import CheckoutSessionResponse
from storefront.models import Identity
from storefront.services.checkout_service import CheckoutService

router = APIRouter()


@router.post(
    "/checkout",
    response_model=CheckoutSessionResponse,
    response_model_exclude_none=True,
    operation_id="create_checkout",
    dependencies=[Depends(dependencies.rate_limit("checkout"))],
)
async def create_checkout(
    checkout_request: Optional[CheckoutRequest] = Body(None),
    identity: Optional[Identity] = Depends(
        dependencies.get_optional_identity
    ),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CheckoutSessionResponse:
  """Create an order and a hosted payment session for it."""
  return await checkout_service.create_checkout(
      checkout_request or CheckoutRequest(), identity
  )
