"""Operator endpoints for the unmatched-item queue.

Resolving an item only flags it; nothing is reprocessed. Fixing the match
is done upstream in the client registry.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.clientops.api.deps import get_ledger
from src.clientops.ledger import UnmatchedItem

router = APIRouter(prefix="/unmatched", tags=["unmatched"])


@router.get("", response_model=list[UnmatchedItem])
async def list_unmatched(
    include_resolved: bool = Query(default=False),
    ledger: Any = Depends(get_ledger),
) -> list[UnmatchedItem]:
    return await ledger.list_unmatched(include_resolved=include_resolved)


@router.post("/{item_id}/resolve", response_model=UnmatchedItem)
async def resolve_unmatched(item_id: str, ledger: Any = Depends(get_ledger)) -> UnmatchedItem:
    """Mark an unmatched item as manually resolved."""
    items = await ledger.list_unmatched(include_resolved=True)
    item = next((i for i in items if i.item_id == item_id), None)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unmatched item {item_id} not found",
        )
    if not item.manually_resolved:
        await ledger.mark_unmatched_resolved(item_id)
    return item.model_copy(update={"manually_resolved": True})
