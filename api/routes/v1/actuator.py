"""
api/routes/v1/actuator.py -- Service-principal monitoring endpoint.

  GET /actuator/info  -- version and record counts (READ_ACTUATOR)

Monitoring tools call this with the token from GET /secure/api/users/actuator
in an Authorization: Bearer header. Admins may call it too.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ActuatorInfoResponse
from auth.dependencies import require
from auth.guard import Operation
from auth.models import User
from core.config import APP_VERSION

router = APIRouter()


@router.get("/actuator/info", response_model=ActuatorInfoResponse)
def actuator_info(
    request: Request,
    caller: User = Depends(require(Operation.READ_ACTUATOR)),
) -> ActuatorInfoResponse:
    return ActuatorInfoResponse(
        version=APP_VERSION,
        users=request.app.state.user_store.count_users(),
        books=request.app.state.book_store.count_books(),
    )
