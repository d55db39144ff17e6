"""Mint and mint-status endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from mintgate.api.dependencies import MintOrchestratorDep
from mintgate.core.errors import ValidationError
from mintgate.schemas.mint import MintCheckResponse, MintRequest, MintResponse, MintResultOut

router = APIRouter(prefix="/api", tags=["mint"])


@router.post("/mint", response_model=MintResponse)
async def mint(body: MintRequest, orchestrator: MintOrchestratorDep) -> MintResponse:
    """Verify a wallet-signed request and delegate the mint to the sponsor.

    Args:
        body: Event id, recipient address, signature and the signed message
        orchestrator: Request-scoped mint orchestrator

    Returns:
        The sponsor's transaction digest
    """
    outcome = await orchestrator.mint(body)
    return MintResponse(data=MintResultOut(tx_digest=outcome.tx_digest))


@router.get("/mints/check", response_model=MintCheckResponse)
async def check_minted(
    orchestrator: MintOrchestratorDep,
    event_id: Annotated[str | None, Query(alias="eventId")] = None,
    address: Annotated[str | None, Query()] = None,
) -> MintCheckResponse:
    """Report whether ``address`` has already minted ``eventId``."""
    if not event_id or not address:
        raise ValidationError("eventId and address are required")
    minted = await orchestrator.check(event_id, address)
    return MintCheckResponse(already_minted=minted)
