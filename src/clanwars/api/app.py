"""FastAPI application wiring for the clan war engine."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clanwars.api import routes
from clanwars.api.runtime import ApiState, build_state
from clanwars.config import get_settings
from clanwars.errors import (
    ClanWarsError,
    ConflictError,
    CooldownActiveError,
    InvalidStateError,
    NotFoundError,
)

_STATUS_BY_ERROR: list[tuple[type[ClanWarsError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (CooldownActiveError, status.HTTP_400_BAD_REQUEST),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
]


async def clanwars_error_handler(request: Request, exc: ClanWarsError) -> JSONResponse:
    """Translate engine errors into JSON responses with a ``detail`` message."""
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    body: dict[str, object] = {"detail": exc.message}
    if isinstance(exc, CooldownActiveError):
        body["cooldown_end"] = exc.cooldown_end.isoformat()
    return JSONResponse(status_code=status_code, content=body)


def create_app(*, state_factory: Callable[[], ApiState] = build_state) -> FastAPI:
    """Instantiate the FastAPI application with routing and lifecycle hooks."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = state_factory()
        app.state.api_state = state
        await state.startup()
        try:
            yield
        finally:
            await state.shutdown()

    app = FastAPI(title="Clan Wars API", version="0.1.0", lifespan=lifespan)
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ClanWarsError, clanwars_error_handler)
    app.include_router(routes.router)
    return app


app = create_app()
