from fastapi import Request

from gemini_chat.services.provider.base import GenerativeProvider


def get_provider(request: Request) -> GenerativeProvider:
    """Return the provider client stored on app state during lifespan."""
    return request.app.state.provider
