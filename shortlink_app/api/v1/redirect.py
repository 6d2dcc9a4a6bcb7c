import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.responses import RedirectResponse

from shortlink_app.api.v1.request_metadata import click_metadata_from_request
from shortlink_app.dependencies import get_link_service
from shortlink_app.services.link_service import LinkService

router = APIRouter(tags=["redirect"])
logger = logging.getLogger(__name__)


@router.get("/{short_code}")
async def redirect_to_long_url(
    short_code: str,
    request: Request,
    link_service: LinkService = Depends(get_link_service)
):
    """
    Redirect to the original URL.

    Flow:
    1. Resolve the link
    2. Record the click (retried on concurrent conflicts)
    3. Redirect

    A click that still conflicts after all retries is logged by the
    recorder and the visitor is redirected anyway.
    """
    link = await link_service.resolve_short_link(short_code)
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )

    result = await link_service.record_click(short_code, click_metadata_from_request(request))
    if not result.ok:
        logger.info("Redirecting %s without a recorded click (%s)", short_code, result.status.value)

    return RedirectResponse(url=link.long_url, status_code=status.HTTP_302_FOUND)
