from __future__ import annotations
"""Account API: provider credit signal."""

from fastapi import APIRouter, Depends

from clipforge.api.deps import get_orchestrator
from clipforge.schemas.task import CreditStatusRead
from clipforge.services.orchestrator import TaskOrchestrator

router = APIRouter()


@router.get("/credits", response_model=CreditStatusRead)
async def get_credits(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Best-effort credit check. Reports ``has_credits=true`` when unsure."""
    status = await orchestrator.check_account_credits()
    return CreditStatusRead(
        has_credits=status.has_credits,
        credits=status.credits,
        error=status.error,
    )
