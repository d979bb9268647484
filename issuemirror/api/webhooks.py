"""GitHub webhook endpoint"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from issuemirror.api.deps import get_cache
from issuemirror.cache import CacheStore
from issuemirror.cancellation import CancellationToken
from issuemirror.config import settings
from issuemirror.errors import AuthenticationError, UnsupportedEventError, ValidationError
from issuemirror.models.base import get_db
from issuemirror.security import EVENT_HEADER, SIGNATURE_HEADER
from issuemirror.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/github")
async def github_webhook(
    request: Request,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """Receive a GitHub issues/label delivery"""
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    event_type = request.headers.get(EVENT_HEADER)

    token = CancellationToken(settings.webhook_timeout_seconds or None)
    service = WebhookService(db, cache)
    try:
        # Store and cache calls are blocking; keep them off the event loop.
        await run_in_threadpool(service.handle, payload, signature, event_type, token)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid signature")
    except UnsupportedEventError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Webhook processing error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to process webhook: {e}")

    return {"success": True}
