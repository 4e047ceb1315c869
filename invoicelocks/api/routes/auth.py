"""Principal introspection endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from invoicelocks.core.auth import Principal, get_current_principal
from invoicelocks.schemas import DEFAULT_ERROR_RESPONSES

router = APIRouter()


@router.get("/me", response_model=Principal, responses=DEFAULT_ERROR_RESPONSES)
def read_principal(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Return the identity locks will be recorded under."""

    return principal
