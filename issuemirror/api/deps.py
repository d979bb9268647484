"""Process-wide collaborators created in the app lifespan"""

from starlette.requests import Request

from issuemirror.cache import CacheStore
from issuemirror.services.sync_guard import SyncGuard


def get_cache(request: Request) -> CacheStore:
    return request.app.state.cache


def get_sync_guard(request: Request) -> SyncGuard:
    return request.app.state.sync_guard


def get_scheduler(request: Request):
    return getattr(request.app.state, "scheduler", None)
