"""Story folder sort mode endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from storyfolders.api.deps import get_folder_sort
from storyfolders.schemas.sort import SortModeResponse, SortResponse, SortRuleSchema, SortUpdate
from storyfolders.services.sort_service import SortOrganizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sort", tags=["sort"])


def _sort_response(organizer: SortOrganizer) -> SortResponse:
    return SortResponse(
        selected_index=organizer.selected_index,
        modes=[
            SortModeResponse(
                title=mode.title,
                has_sections=mode.has_sections,
                fields=mode.fields,
                rules=[
                    SortRuleSchema(
                        field=rule.field,
                        display_name=rule.display_name,
                        ascending=rule.ascending,
                        case_insensitive=rule.case_insensitive,
                    )
                    for rule in mode.rules
                ],
            )
            for mode in organizer.modes
        ],
    )


@router.get("", response_model=SortResponse)
async def get_sort_endpoint(
    organizer: Annotated[SortOrganizer, Depends(get_folder_sort)],
) -> SortResponse:
    """Show the story folder sort modes."""
    return _sort_response(organizer)


@router.put("", response_model=SortResponse)
async def update_sort_endpoint(
    body: SortUpdate,
    organizer: Annotated[SortOrganizer, Depends(get_folder_sort)],
) -> SortResponse:
    """Select a sort mode and/or flip the direction of one of its rules."""
    if body.selected_index is not None and not organizer.select_mode(body.selected_index):
        raise HTTPException(status_code=404, detail="Sort mode not found")

    if body.field is not None and body.ascending is not None:
        index = body.mode_index if body.mode_index is not None else organizer.selected_index
        try:
            organizer.update_rule(index, body.field, body.ascending)
        except IndexError as exc:
            raise HTTPException(status_code=404, detail="Sort mode not found") from exc
        logger.info("Sort rule %s in mode %d set to ascending=%s", body.field, index, body.ascending)

    return _sort_response(organizer)
