from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from shortlink_app.api.v1.request_metadata import click_metadata_from_request
from shortlink_app.dependencies import get_link_service
from shortlink_app.schemas.link import (
    ClickEventResponse,
    ClickRecorded,
    LinkCreate,
    LinkResponse,
)
from shortlink_app.services.link_service import LinkService

router = APIRouter(prefix="/links", tags=["links"])


@router.post("/", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_short_link(
    link_data: LinkCreate,
    link_service: LinkService = Depends(get_link_service)
):
    """Create a new short link (InvalidUrlError -> 400, CodeExhaustionError -> 503)"""
    return await link_service.create_short_link(link_data.long_url, link_data.owner_id)


@router.get("/", response_model=List[LinkResponse])
async def list_links(link_service: LinkService = Depends(get_link_service)):
    """List every link (admin view, full scan)"""
    return await link_service.list_all_links()


@router.get("/{short_code}", response_model=LinkResponse)
async def get_link_info(
    short_code: str,
    link_service: LinkService = Depends(get_link_service)
):
    """Get information about a short link"""
    link = await link_service.resolve_short_link(short_code)
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )
    return link


@router.get("/{short_code}/clicks", response_model=List[ClickEventResponse])
async def list_click_events(
    short_code: str,
    link_service: LinkService = Depends(get_link_service)
):
    """Raw click events in sequence order"""
    if not await link_service.resolve_short_link(short_code):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )
    return await link_service.get_click_events(short_code)


@router.post("/{short_code}/clicks", response_model=ClickRecorded, status_code=status.HTTP_201_CREATED)
async def record_click(
    short_code: str,
    request: Request,
    link_service: LinkService = Depends(get_link_service)
):
    """Record a click without redirecting (LinkNotFoundError -> 404, CommitConflictError -> 409)"""
    result = await link_service.record_click(short_code, click_metadata_from_request(request))
    result.raise_for_status()
    return ClickRecorded(short_code=short_code, sequence=result.sequence, attempts=result.attempts)


@router.get("/{short_code}/events")
async def stream_link_updates(
    short_code: str,
    request: Request,
    link_service: LinkService = Depends(get_link_service)
):
    """
    Server-sent events with the link record after each click.

    The subscription is released when the client disconnects.
    """
    if not await link_service.resolve_short_link(short_code):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )

    stream = await link_service.subscribe_to_link_updates(short_code)

    async def event_source():
        try:
            async for link in stream:
                if await request.is_disconnected():
                    break
                yield f"data: {LinkResponse.model_validate(link).model_dump_json()}\n\n"
        finally:
            await stream.aclose()

    return StreamingResponse(event_source(), media_type="text/event-stream")
