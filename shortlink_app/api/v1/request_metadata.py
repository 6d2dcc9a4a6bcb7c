from fastapi import Request

from shortlink_app.models.link import ClickMetadata


def click_metadata_from_request(request: Request) -> ClickMetadata:
    """Click details from the request; country comes from a CDN header when present"""
    return ClickMetadata(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
        country=request.headers.get("cf-ipcountry"),
    )
