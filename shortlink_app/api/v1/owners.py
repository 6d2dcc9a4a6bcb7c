from typing import List

from fastapi import APIRouter, Depends

from shortlink_app.dependencies import get_link_service
from shortlink_app.schemas.link import LinkResponse
from shortlink_app.services.link_service import LinkService

router = APIRouter(prefix="/owners", tags=["owners"])


@router.get("/{owner_id}/links", response_model=List[LinkResponse])
async def list_owner_links(
    owner_id: str,
    link_service: LinkService = Depends(get_link_service)
):
    """Links created by one owner (ownership index lookup, no full scan)"""
    return await link_service.list_links_for_owner(owner_id)
