from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from currency_cache.api.router import router as api_router
from currency_cache.bootstrap import bootstrap
from currency_cache.core.config import settings
from currency_cache.core.errors import CurrencyCacheError, NotFoundError
from currency_cache.core.logging import RequestContextMiddleware, get_logger, log_exception
from currency_cache.core.responses import ApiError, error_json
from currency_cache.runtime import Runtime, build_runtime

logger = get_logger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_: Request, exc: ApiError) -> JSONResponse:
        return error_json(exc.status_code, exc.message, exc.error)

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return error_json(404, str(exc))

    @app.exception_handler(CurrencyCacheError)
    async def _domain_error(request: Request, exc: CurrencyCacheError) -> JSONResponse:
        log_exception(logger, "http.request.domain_error", path=request.url.path)
        return error_json(500, "Internal server error", str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_json(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg") if errors else None
        return error_json(400, "Invalid request", detail)


def create_app(runtime: Runtime | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime or build_runtime()
        app.state.runtime = rt
        # Serving starts right away; reads fail fast until the store connects.
        startup = asyncio.create_task(bootstrap(rt))
        try:
            yield
        finally:
            startup.cancel()
            with suppress(asyncio.CancelledError):
                await startup
            await rt.close()

    app = FastAPI(title="Currency Cache", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    _register_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()


def serve() -> None:
    import uvicorn

    uvicorn.run("currency_cache.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    serve()
