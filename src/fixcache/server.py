from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from . import __version__
from .cache import FixProneCache
from .config import FixCacheConfig, load_config
from .constants import EventKind
from .errors import FixCacheError, UnsupportedEventError
from .github import GitHubClientFactory
from .logging import FixCacheLogger
from .middleware import (
    RequestIDMiddleware,
    error_payload,
    http_exception_handler,
    unhandled_exception_handler,
)
from .router import EventContext, EventOutcome, Services, parse_event_kind, route_event
from .signature import verify_signature
from .store import create_stores

logger = logging.getLogger(__name__)


def build_services(
    config: FixCacheConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    repo_store, cache_store = create_stores(config)
    return Services(
        config=config,
        repo_store=repo_store,
        cache_store=cache_store,
        cache=FixProneCache(cache_store, config.cache_size),
        github=GitHubClientFactory(config, transport=transport),
    )


async def process_event(
    services: Services,
    kind: EventKind,
    payload: dict,
    event_logger: FixCacheLogger,
) -> Optional[EventOutcome]:
    """
    Run one delivery to completion. Failures abort the event and are logged;
    nothing is queued for retry.
    """
    event_logger = event_logger.bind(event=kind.value)
    ctx = EventContext.for_delivery(services, event_logger)
    try:
        with event_logger.stage("handle_event"):
            outcome = await route_event(ctx, kind, payload)
    except FixCacheError as exc:
        event_logger.error("event_failed", error_code=exc.code, error=str(exc))
        return None
    except Exception as exc:
        event_logger.error("event_crashed", error_code=type(exc).__name__, error=str(exc))
        logger.exception("Unhandled error while processing %s delivery %s", kind.value, event_logger.delivery_id)
        return None

    event_logger.info(
        "event_processed",
        status=outcome.status,
        reason=outcome.reason,
        details=outcome.details,
    )
    return outcome


def create_app(
    config: Optional[FixCacheConfig] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """
    Build the webhook app. Configuration is validated here, so a bad config fails
    before any delivery is accepted.
    """
    if services is None:
        services = build_services(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.repo_store.close()
        await services.cache_store.close()

    app = FastAPI(title="Fix Cache", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "fixcache"}

    @app.post("/webhooks/github", status_code=202)
    @app.post("/", status_code=202, include_in_schema=False)
    async def github_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: Optional[str] = Header(None),
        x_github_delivery: Optional[str] = Header(None),
        x_hub_signature_256: Optional[str] = Header(None),
        x_hub_signature: Optional[str] = Header(None),
    ):
        request_id = request.state.request_id
        body = await request.body()
        services: Services = request.app.state.services

        secret = services.config.webhook_secret.get_secret_value()
        if not verify_signature(secret, body, x_hub_signature_256, x_hub_signature):
            logger.warning("Rejected delivery %s: invalid signature", request_id)
            raise HTTPException(
                status_code=401,
                detail=error_payload("INVALID_SIGNATURE", "Webhook signature mismatch", request_id),
            )

        try:
            kind = parse_event_kind(x_github_event)
        except UnsupportedEventError as exc:
            logger.info("Ignoring delivery %s: %s", request_id, exc)
            return JSONResponse(
                status_code=202,
                content={"status": "ignored", "reason": exc.code, "delivery_id": request_id},
            )

        if kind is EventKind.PING:
            return {"msg": "pong", "delivery_id": request_id}

        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise HTTPException(
                status_code=400,
                detail=error_payload("INVALID_PAYLOAD", f"Body is not valid JSON: {exc}", request_id),
            )
        if not isinstance(payload, dict):
            raise HTTPException(
                status_code=400,
                detail=error_payload("INVALID_PAYLOAD", "Body must be a JSON object", request_id),
            )

        background_tasks.add_task(
            process_event, services, kind, payload, FixCacheLogger(x_github_delivery or request_id)
        )
        return {"status": "accepted", "event": kind.value, "delivery_id": request_id}

    return app
