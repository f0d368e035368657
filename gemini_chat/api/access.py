from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from gemini_chat.config import settings

ACCESS_COOKIE_MAX_AGE = 30 * 24 * 60 * 60  # 30 days


async def issue_access_cookie() -> RedirectResponse:
    """Shared-secret route: set the auth cookie and send the browser to the chat page."""
    response = RedirectResponse(url="/", status_code=307)
    response.set_cookie(
        key=settings.chat_auth_cookie_name,
        value=settings.chat_auth_cookie_value,
        max_age=ACCESS_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.chat_environment == "production",
    )
    return response


def build_access_router(path: str) -> APIRouter:
    router = APIRouter()
    router.add_api_route(path, issue_access_cookie, methods=["GET"], include_in_schema=False)
    return router
