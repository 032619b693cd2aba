"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from shared.config.settings import settings
from shared.utils.exceptions import DatabaseError
from rest_api.core.cors import configure_cors
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.aggregator import router as aggregator_router
from rest_api.routers.public import health_router


app = FastAPI(
    title="Table Ordering REST API",
    description="Dine-in ordering, order lifecycle and delivery aggregator sync",
    version="0.1.0",
    lifespan=lifespan,
)

configure_cors(app)
register_middlewares(app)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures that escaped the services; details stay in the logs."""
    error = DatabaseError(
        "request handling",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(aggregator_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=True,
    )
