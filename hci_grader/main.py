"""FastAPI 入口：注册路由、异常处理器，并在启动时初始化数据库表与设置快照。"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from hci_grader import models  # noqa: F401  注册全部表
from hci_grader.api import router as api_router
from hci_grader.config import configure_logging, get_settings
from hci_grader.db import Base, SessionLocal, session_scope
from hci_grader.exceptions import GraderError
from hci_grader.services.batch import BatchProcessor
from hci_grader.services.settings import SettingsStore

logger = logging.getLogger(__name__)


def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """所有错误统一返回 ``{"error": message}``。"""

    @app.exception_handler(GraderError)
    async def handle_grader_error(request: Request, exc: GraderError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.response_message})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _format_validation_error(exc)})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """应用工厂，便于测试替换数据库与后台 worker。"""

    settings = get_settings()
    configure_logging(settings)
    app = FastAPI(title=f"{settings.app_title} API", version="0.1.0")

    app.state.session_factory = session_factory or SessionLocal
    app.state.settings_store = SettingsStore(settings)
    app.state.batch_processor = BatchProcessor(
        app.state.session_factory, settings, app.state.settings_store
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.on_event("startup")
    def init_models() -> None:
        """启动时确保表存在，并加载设置快照。"""

        factory = app.state.session_factory
        Base.metadata.create_all(bind=factory.kw["bind"])
        with session_scope(factory) as db:
            app.state.settings_store.reload(db)
        logger.info("%s started", settings.app_title)

    @app.on_event("shutdown")
    def stop_workers() -> None:
        app.state.batch_processor.shutdown(wait=False)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
