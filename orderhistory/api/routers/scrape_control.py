"""
orderhistory/api/routers/scrape_control.py

Control messages in, statistics and outbound messages out.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationError

from orderhistory.schemas.messages import parse_control_message
from orderhistory.services.order_history_service import OrderHistoryService

router = APIRouter(prefix="/scrape", tags=["scrape-control"])


class ActionAcceptedResponse(BaseModel):
    action: str
    purpose: str
    started: bool


class StatisticsResponse(BaseModel):
    purpose: str
    statistics: dict[str, int]
    signin_required: bool


def get_order_history_service(request: Request) -> OrderHistoryService:
    service = getattr(request.app.state, "order_history_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scrape service is not running.",
        )
    return service


@router.post("/actions", response_model=ActionAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def post_action(
    payload: dict[str, Any] = Body(...),
    service: OrderHistoryService = Depends(get_order_history_service),
) -> ActionAcceptedResponse:
    """
    Accept one control message. Scrapes run in the background; poll
    /scrape/statistics and /scrape/messages for progress and results.
    """

    try:
        message = parse_control_message(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False),
        ) from exc

    task = service.session.handle(message)
    return ActionAcceptedResponse(
        action=message.action,
        purpose=service.session.purpose,
        started=task is not None,
    )


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    service: OrderHistoryService = Depends(get_order_history_service),
) -> StatisticsResponse:
    session = service.session
    return StatisticsResponse(
        purpose=session.purpose,
        statistics=session.statistics.snapshot(),
        signin_required=session.signin_required,
    )


@router.get("/messages")
def get_messages(
    action: str | None = Query(default=None, description="Only messages with this action"),
    service: OrderHistoryService = Depends(get_order_history_service),
) -> list[dict[str, Any]]:
    return service.channel.messages(action=action)
