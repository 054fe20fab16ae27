"""Request-scoped dependencies.

The storage backend, media ingestor and cache are built once in
`create_app` and read from `app.state`; tests swap them by building the
app with their own instances.
"""

from fastapi import Header, Request

from app.services.errors import NotAuthenticated
from app.services.media import MediaIngestor
from app.settings import Settings
from app.stores.base import StoreBackend
from app.stores.redis import FacetCache


def get_backend(request: Request) -> StoreBackend:
    return request.app.state.backend


def get_media(request: Request) -> MediaIngestor:
    return request.app.state.media


def get_facet_cache(request: Request) -> FacetCache | None:
    return request.app.state.facet_cache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_requester_id(
    x_user_id: int | None = Header(
        default=None,
        alias="X-User-Id",
        description="Authenticated user id, set by the auth proxy",
        ge=1,
    ),
) -> int:
    """Identity of the authenticated requester.

    Authentication happens upstream; this service only trusts the header.
    """
    if x_user_id is None:
        raise NotAuthenticated("You must be logged in to do that")
    return x_user_id
