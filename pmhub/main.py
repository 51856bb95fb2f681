import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from pmhub.controllers import all_routers
from pmhub.core.config import Settings, settings as default_settings
from pmhub.core.database import build_engine, build_session_factory, init_models
from pmhub.core.exceptions import BusinessException, ErrorCode
from pmhub.core.middleware import LoggingMiddleware
from pmhub.realtime.auth import AuthenticationGate, UserLookup, db_user_lookup
from pmhub.realtime.hub import SyncHub

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def create_app(settings: Optional[Settings] = None, user_lookup: Optional[UserLookup] = None) -> FastAPI:
    """
    Build the service. Everything stateful (engine, sessions, realtime hub)
    hangs off ``app.state`` so several apps can coexist in one process.
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    engine = build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_models(engine)
        logger.info(f"{settings.PROJECT_NAME} started ({settings.ENV})")
        yield
        await engine.dispose()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.sync_hub = SyncHub(
        auth_gate=AuthenticationGate(user_lookup or db_user_lookup(session_factory), settings)
    )

    # =================================================================
    # 1. CORS
    # =================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=settings.CORS_ORIGINS != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =================================================================
    # 2. Middleware / monitoring
    # =================================================================
    app.add_middleware(LoggingMiddleware)
    try:
        # one registry per app so several apps can live in one process
        Instrumentator(registry=CollectorRegistry()).instrument(app).expose(app)
    except Exception as e:
        logger.warning(f"Prometheus setup failed: {e}")

    # =================================================================
    # 3. Routers
    # =================================================================
    for router, prefix, tag in all_routers:
        app.include_router(router, prefix=prefix, tags=[tag])

    # =================================================================
    # 4. Exception handlers
    # =================================================================
    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        return JSONResponse(
            status_code=exc.error_code.http_status,
            content={
                "success": False,
                "code": exc.error_code.biz_code,
                "message": exc.message,
                "data": None,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=ErrorCode.INVALID_INPUT.http_status,
            content={
                "success": False,
                "code": ErrorCode.INVALID_INPUT.biz_code,
                "message": ErrorCode.INVALID_INPUT.default_message,
                "data": jsonable_errors(exc),
            },
        )

    @app.get("/")
    async def root():
        return {"message": "PM Hub realtime service is running", "service": "pmhub-realtime"}

    return app


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pmhub.main:app", host="0.0.0.0", port=8000, reload=default_settings.DEBUG)
