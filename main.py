from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os

from core.auth import Authenticator
from core.error_responses import ErrorCode, error_response, validation_error_response
from core.structured_logging import (
    RequestCorrelationMiddleware,
    configure_structured_logging,
)
import database
from env_config import Config
from routers import (
    boost_router,
    reward_profiles_router,
    rewards_router,
    settlement_router,
    simulation_router,
)

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


def create_app(session_factory=None, authenticator=None) -> FastAPI:
    """
    Build the API app.

    Tests pass their own session factory (in-memory SQLite) and authenticator;
    production uses DATABASE_URL and the auth settings from Config.
    """
    app = FastAPI(title="Ride Boost API", version=Config.API_VERSION)

    app.state.session_factory = session_factory or database.init_database()
    app.state.authenticator = authenticator or Authenticator.from_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestCorrelationMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = _STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        return error_response(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return validation_error_response(exc.errors())

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "version": Config.API_VERSION,
            "database": database.DB_TYPE if session_factory is None else "custom",
        }

    app.include_router(reward_profiles_router)
    app.include_router(rewards_router)
    app.include_router(boost_router)
    app.include_router(settlement_router)
    app.include_router(simulation_router)

    return app


if __name__ == "__main__":
    import uvicorn

    configure_structured_logging()
    Config.log_status()
    Config.validate_required()

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
