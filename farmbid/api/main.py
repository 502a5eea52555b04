from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from farmbid.api import conf
from farmbid.api.realtime import WebSocketHub
from farmbid.api.routes.base import router
from farmbid.auctions import AuctionError, AuctionScheduler, AuctionService, Publisher
from farmbid.utils import log

log.init(conf.get_log_level(), conf.get_environment())
logger = log.get_logger(__name__)


def build_auction_service(publisher: Publisher) -> AuctionService:
    """Wire the auction service to the configured storage backend."""
    settings = conf.get_auction_settings()

    if conf.get_storage_backend() == "memory":
        from farmbid.api.seed import seed_memory
        from farmbid.auctions.memory import (
            InMemoryAuctionStore,
            InMemoryEscrowLedger,
            InMemoryListingCatalog,
            InMemoryUserDirectory,
        )

        users, listings, escrow = InMemoryUserDirectory(), InMemoryListingCatalog(), InMemoryEscrowLedger()
        seed_memory(users, listings, escrow, settings.escrow_deposit_percentage)
        logger.warning("Using the in-memory store, data is lost on restart")
        return AuctionService(InMemoryAuctionStore(), users, listings, escrow, publisher, settings)

    from farmbid.models.operations.auctions import CouchbaseAuctionStore
    from farmbid.models.operations.escrow import CouchbaseEscrowLedger
    from farmbid.models.operations.listings import CouchbaseListingCatalog
    from farmbid.models.operations.users import CouchbaseUserDirectory

    return AuctionService(
        CouchbaseAuctionStore(),
        CouchbaseUserDirectory(),
        CouchbaseListingCatalog(),
        CouchbaseEscrowLedger(),
        publisher,
        settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A service wired in before startup (tests, embedding) is kept as is
    if getattr(app.state, "auction_service", None) is None:
        if conf.get_storage_backend() == "couchbase":
            from farmbid.clients.couchbase import check_connection

            logger.info("Verifying Couchbase connection...")
            await check_connection()
            logger.info("Couchbase connection verified.")

        app.state.hub = WebSocketHub()
        app.state.auction_service = build_auction_service(app.state.hub)

    app.state.auth_enabled = conf.get_auth_enabled()
    if app.state.auth_enabled:
        from farmbid.utils import auth

        app.state.auth_client = auth.AuthClient(conf.get_auth_config())
    else:
        logger.warning("Authentication is disabled (AUTH_ENABLED=false), bearer tokens are trusted as user ids")

    scheduler = None
    scheduler_conf = conf.get_scheduler_conf()
    if scheduler_conf.enabled:
        scheduler = AuctionScheduler(
            app.state.auction_service,
            promote_interval_seconds=scheduler_conf.promote_interval_seconds,
            live_interval_seconds=scheduler_conf.live_interval_seconds,
        )
        scheduler.start()
    else:
        logger.warning("Auction scheduler is disabled (SCHEDULER_ENABLED=false)")

    yield

    if scheduler:
        scheduler.shutdown()


app = FastAPI(
    title="Farmbid Auctions API",
    version="0.1.0",
    docs_url="/docs",
    lifespan=lifespan,
    debug=conf.get_http_expose_errors(),
)

app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuctionError)
async def handle_auction_error(request: Request, exc: AuctionError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(sorted(methods_set)) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    logger.info(f"Starting API on port {http_conf.port}")
    uvicorn.run(
        "farmbid.api.main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        log_config=None,
    )
