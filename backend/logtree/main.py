import logging
from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from logtree.config import Settings, settings
from logtree.middleware.error_handler import ErrorHandlerMiddleware
from logtree.middleware.logging import RequestLoggingMiddleware
from logtree.nodes.aggregation import AggregationEngine, summarize_children
from logtree.nodes.router import router as nodes_router
from logtree.nodes.store import build_store
from logtree.realtime.broadcaster import Broadcaster
from logtree.realtime.router import router as realtime_router

logger = structlog.get_logger()


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        logger_factory=structlog.PrintLoggerFactory(),
    )


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings
    configure_logging(config.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = await build_store(config)
        app.state.engine = AggregationEngine(
            store,
            factor=config.AGGREGATION_FACTOR,
            summarize=partial(
                summarize_children,
                snippet_length=config.SNIPPET_LENGTH,
                max_length=config.SUMMARY_MAX_LENGTH,
            ),
        )
        app.state.broadcaster = Broadcaster(queue_size=config.SUBSCRIBER_QUEUE_SIZE)
        logger.info("app_started", node_store=config.NODE_STORE, factor=config.AGGREGATION_FACTOR)
        yield
        app.state.broadcaster.close()
        await store.close()
        logger.info("app_stopped")

    app = FastAPI(
        title="Log Summary Tree",
        version="0.1.0",
        docs_url="/docs",
        lifespan=lifespan,
    )

    cors_origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    @app.exception_handler(RequestValidationError)
    async def invalid_input(request: Request, exc: RequestValidationError):
        logger.info("invalid_input", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    app.include_router(nodes_router)
    app.include_router(realtime_router)

    @app.get("/", response_class=PlainTextResponse)
    async def banner():
        return "Log Summarizer API with WebSocket is running!"

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
