from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from .audit_store import AuditLogger, AuditStoreError, CouchAuditStore, FileAuditStore
from .clients import ConversationClient, DiscoveryClient, PriceFeedClient, UpstreamServiceError
from .config import Settings, load_settings
from .dispatcher import IntentDispatcher, Route
from .enrichment import ArticleEnrichmentHandler, PriceEnrichmentHandler, SentimentEnrichmentHandler
from .export import chat_rows, render_csv
from .models import DialogResponse, MessageRequest
from .security import require_basic_auth

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("cryptobot").setLevel(log_level)
logger = logging.getLogger("cryptobot.app")

ENV_PATH = BASE_DIR / ".env"


def load_env_files(package_env: Path = ENV_PATH, cwd: Optional[Path] = None) -> None:
    """Load the package .env (overriding the process environment), then the CWD .env."""
    if package_env.exists():
        load_dotenv(package_env, override=True)
    cwd_env = (cwd or Path.cwd()) / ".env"
    if cwd_env.exists() and cwd_env.resolve() != package_env.resolve():
        load_dotenv(cwd_env, override=False)


load_env_files()

UNCONFIGURED_WORKSPACE_TEXT = (
    "The app has not been configured with a <b>WORKSPACE_ID</b> environment variable. "
    "Please refer to the README documentation on how to set this variable. <br>"
    "Once a workspace has been defined the intents may be imported from the training "
    "folder in order to get a working application."
)


@dataclass
class AppServices:
    """Process-wide handles created once at startup and read-only afterwards."""
    settings: Settings
    http: httpx.AsyncClient
    conversation: ConversationClient
    dispatcher: IntentDispatcher
    audit: AuditLogger


def build_routes(price_feed: PriceFeedClient, discovery: DiscoveryClient) -> Dict[str, Route]:
    """Purpose: Build the intent -> enrichment route table.
    Inputs/Outputs: Inputs are the price and search clients; output is the route table.
    Side Effects / State: None.
    Dependencies: Enrichment handlers and Route.
    Failure Modes: None.
    If Removed: The dispatcher passes every response through unchanged.
    Testing Notes: Table keys are price, sentiment and view_articles.
    """
    # Sentiment and article replies are not written to the audit log.
    return {
        "price": Route("price", PriceEnrichmentHandler(price_feed), audit=True),
        "sentiment": Route("sentiment", SentimentEnrichmentHandler(discovery), audit=False),
        "view_articles": Route("view_articles", ArticleEnrichmentHandler(discovery), audit=False),
    }


def build_audit_logger(settings: Settings, http: httpx.AsyncClient) -> AuditLogger:
    if settings.cloudant_url:
        return AuditLogger(CouchAuditStore(settings.cloudant_url, settings.cloudant_db, http))
    if settings.audit_log_path:
        return AuditLogger(FileAuditStore(settings.audit_log_path))
    return AuditLogger()


def build_services(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> AppServices:
    """Purpose: Wire clients, handlers, dispatcher and audit logger for one process.
    Inputs/Outputs: Inputs are Settings and an optional httpx transport; output is
        AppServices.
    Side Effects / State: Opens a shared httpx.AsyncClient (closed at shutdown).
    Dependencies: All client and handler constructors.
    Failure Modes: None; connectivity problems surface per request.
    If Removed: The lifespan hook has nothing to serve requests with.
    Testing Notes: Pass httpx.MockTransport to fake every upstream service.
    """
    http = httpx.AsyncClient(timeout=settings.http_timeout, transport=transport)
    price_feed = PriceFeedClient(settings, http)
    discovery = DiscoveryClient(settings, http)
    return AppServices(
        settings=settings,
        http=http,
        conversation=ConversationClient(settings, http),
        dispatcher=IntentDispatcher(build_routes(price_feed, discovery)),
        audit=build_audit_logger(settings, http),
    )


async def upstream_error_handler(request: Request, exc: UpstreamServiceError) -> JSONResponse:
    # Relay the upstream status and body to the caller unchanged.
    return JSONResponse(status_code=exc.status_code, content=exc.body)


async def audit_store_error_handler(request: Request, exc: AuditStoreError) -> JSONResponse:
    logger.error("audit_store=failed path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"code": 503, "error": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application for the crypto dialog server.
    Inputs/Outputs: Inputs are optional Settings and httpx transport; output is FastAPI.
    Side Effects / State: Reads the environment when settings are not given.
    Dependencies: load_settings, build_services, route handlers below.
    Failure Modes: ConfigError when audit logging lacks LOG_USER/LOG_PASS.
    If Removed: Nothing serves /api/message.
    Testing Notes: Use TestClient as a context manager so startup/shutdown run.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        services = build_services(settings, transport)
        await services.audit.start()
        application.state.services = services
        logger.info(
            "startup workspace_configured=%s audit_enabled=%s audit_ready=%s",
            settings.workspace_configured,
            services.audit.enabled,
            services.audit.ready,
        )
        try:
            yield
        finally:
            await services.audit.drain()
            await services.http.aclose()

    application = FastAPI(title="Crypto Dialog Enrichment Server", lifespan=lifespan)
    application.add_exception_handler(UpstreamServiceError, upstream_error_handler)
    application.add_exception_handler(AuditStoreError, audit_store_error_handler)

    def get_services(request: Request) -> AppServices:
        return request.app.state.services

    @application.get("/health")
    async def health(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        return {"status": "ok", "audit": services.audit.ready}

    @application.post("/api/message")
    async def message(
        body: Optional[MessageRequest] = None,
        services: AppServices = Depends(get_services),
    ) -> Dict[str, Any]:
        """Purpose: Run one dialog turn and enrich the reply with market data.
        Inputs/Outputs: Input is MessageRequest; output is the enriched dialog response.
        Side Effects / State: Dialog call, at most one auxiliary call, optional audit write.
        Dependencies: ConversationClient, IntentDispatcher, AuditLogger.
        Failure Modes: UpstreamServiceError becomes the upstream status and body;
            an unconfigured workspace returns the instructional payload.
        If Removed: The chat UI has no backend.
        Testing Notes: Mock the dialog engine and price feed, then check output.text.
        """
        if not services.settings.workspace_configured:
            logger.warning("workspace=missing action=instructions")
            return {"output": {"text": UNCONFIGURED_WORKSPACE_TEXT}}

        payload: Dict[str, Any] = {
            "workspace_id": services.settings.workspace_id,
            "context": {},
            "input": {},
        }
        if body is not None:
            if body.input:
                payload["input"] = body.input
            if body.context:
                payload["context"] = body.context

        data = await services.conversation.message(payload)
        response = DialogResponse.model_validate(data)
        result = await services.dispatcher.dispatch(response)
        reply = response.model_dump(mode="json")
        if result.audit and services.audit.enabled:
            services.audit.submit(payload, reply)
        return reply

    if settings.audit_enabled:
        auth = require_basic_auth(settings.log_user or "", settings.log_pass or "")

        @application.post("/clearDb")
        async def clear_db(
            _: str = Depends(auth),
            services: AppServices = Depends(get_services),
        ) -> Dict[str, str]:
            await services.audit.clear()
            return {"message": "Clearing db"}

        @application.get("/chats")
        async def chats(
            _: str = Depends(auth),
            services: AppServices = Depends(get_services),
        ) -> Response:
            records = await services.audit.records()
            return Response(
                content=render_csv(chat_rows(records)),
                media_type="text/csv",
                headers={"Content-Disposition": 'attachment; filename="chats.csv"'},
            )

    return application


app = create_app()
