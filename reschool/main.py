from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CONFIG
from .db import initialize_db
from .routes import barometers as barometer_routes
from .routes import children as children_routes
from .routes import dagens_smiley as dagens_smiley_routes
from .routes import indsatstrappe as indsatstrappe_routes
from .routes import invitations as invitation_routes
from .routes import members as member_routes
from .routes import notifications as notification_routes
from .routes import progress as progress_routes
from .routes import sengetider as sengetider_routes
from .routes import users as user_routes
from .routes import webhooks as webhook_routes

logger = logging.getLogger(__name__)

initialize_db()

app = FastAPI(
    title="ReSchool API",
    version="0.1.0",
    description="Shared follow-up on a child's wellbeing for the adults around the child",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(user_routes.router)
app.include_router(children_routes.router)
app.include_router(member_routes.router)
app.include_router(barometer_routes.router)
app.include_router(dagens_smiley_routes.router)
app.include_router(sengetider_routes.router)
app.include_router(indsatstrappe_routes.router)
app.include_router(progress_routes.router)
app.include_router(invitation_routes.router)
app.include_router(notification_routes.router)
app.include_router(webhook_routes.router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_errors(exc)
    logger.info("request validation failed", extra={"path": request.url.path, "error_count": len(errors)})
    return JSONResponse(status_code=400, content={"detail": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error", extra={"path": request.url.path, "method": request.method})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
