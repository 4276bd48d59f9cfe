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

"""Operator order management routes."""

from typing import List, Optional

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query
from fastapi.responses import JSONResponse

from storefront import dependencies
from storefront.enums import OrderStatus
from storefront.models import LabelResult
from storefront.models import ManualTrackingRequest
from storefront.models import OrderView
from storefront.models import ShipOrderRequest
from storefront.models import StatusUpdateRequest
from storefront.services.order_service import OrderService

router = APIRouter(
    prefix="/admin/orders",
    dependencies=[
        Depends(dependencies.verify_operator_key),
        Depends(dependencies.rate_limit("admin")),
    ],
)


@router.get(
    "", response_model=List[OrderView], operation_id="admin_list_orders"
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    email: Optional[str] = Query(None),
    needs_reconciliation: Optional[bool] = Query(
        None, alias="needsReconciliation"
    ),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> List[OrderView]:
  """List orders, newest first, optionally filtered."""
  return await order_service.list_orders(
      status=status,
      email=email,
      needs_reconciliation=needs_reconciliation,
      limit=limit,
      offset=offset,
  )


@router.get("/{id}", response_model=OrderView, operation_id="admin_get_order")
async def get_order(
    order_id: str = Path(..., alias="id"),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  return await order_service.get_order(order_id)


@router.patch(
    "/{id}", response_model=OrderView, operation_id="admin_update_status"
)
async def update_status(
    order_id: str = Path(..., alias="id"),
    body: StatusUpdateRequest = Body(...),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  """Apply an operator status change (cancel, refund, ...)."""
  return await order_service.set_status(order_id, body.status)


@router.post(
    "/{id}/ship",
    response_model=LabelResult,
    response_model_exclude_none=True,
    operation_id="admin_ship_order",
    responses={422: {"model": LabelResult}},
)
async def ship_order(
    order_id: str = Path(..., alias="id"),
    body: Optional[ShipOrderRequest] = Body(None),
    order_service: OrderService = Depends(dependencies.get_order_service),
):
  """Buy a shipping label and mark the order shipped."""
  body = body or ShipOrderRequest()
  label = await order_service.ship_order(
      order_id,
      preferred_carrier=body.preferred_carrier,
      parcel=body.parcel,
  )
  if not label.success:
    return JSONResponse(
        status_code=422,
        content=label.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
  return label


@router.patch(
    "/{id}/ship",
    response_model=OrderView,
    operation_id="admin_record_tracking",
)
async def record_tracking(
    order_id: str = Path(..., alias="id"),
    body: ManualTrackingRequest = Body(...),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  """Record tracking for a label bought elsewhere."""
  return await order_service.record_tracking(
      order_id, body.tracking_number, body.carrier
  )


@router.post(
    "/{id}/deliver",
    response_model=OrderView,
    operation_id="admin_mark_delivered",
)
async def mark_delivered(
    order_id: str = Path(..., alias="id"),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> OrderView:
  return await order_service.mark_delivered(order_id)
