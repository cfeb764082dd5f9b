"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from repo_insight.api import analysis, git_history, health, sse
from repo_insight.config import settings
from repo_insight.core.logging import setup_logging
from repo_insight.core.tracing import TracingContext

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Repository analysis and commit history API",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def tracing_middleware(request: Request, call_next):
    """Bind a correlation id to the request; dispatched tasks inherit it."""
    TracingContext.set(correlation_id=request.headers.get("X-Request-Id", ""))
    correlation_id = TracingContext.get_or_create_correlation_id()
    try:
        response = await call_next(request)
        response.headers["X-Request-Id"] = correlation_id
        return response
    finally:
        TracingContext.clear()


app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(analysis.router, prefix="/api")
app.include_router(git_history.router, prefix="/api")
app.include_router(sse.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("repo_insight.main:app", host="0.0.0.0", port=8000, reload=True)
