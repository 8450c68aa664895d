from fastapi import FastAPI, Request

from backend.apps.facturx import api as facturx_api
from backend.core.observability import init_observability, set_trace_id
from backend.core.observability.health import router as health_router
from backend.core.observability.logging import set_request_id


def create_app() -> FastAPI:
    init_observability()

    app = FastAPI(title="FormatX Factur-X API")

    @app.middleware("http")
    async def trace_context(request: Request, call_next):
        trace_id = set_trace_id(request.headers.get("X-Trace-ID"))
        set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Trace-ID"] = trace_id
        return response

    # Routers
    app.include_router(health_router)
    app.include_router(facturx_api.router)

    return app


# ASGI app instance
app = create_app()
