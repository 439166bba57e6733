from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stage_eval.api.router import api_router
from stage_eval.config import load_settings
from stage_eval.repositories.evaluation_job_repository import job_repository
from stage_eval.tasks.evaluation_runner import drain

CORS_ORIGINS = [
    "http://localhost:3000",
    "https://localhost:3443",
    "http://127.0.0.1:3000",
    "https://127.0.0.1:3443",
]

SHUTDOWN_DRAIN_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    logging.getLogger("stage_eval").setLevel(settings.log_level)
    job_repository.configure(limit=settings.evaluation_job_limit)
    app.state.lifespan_started = True
    yield
    await drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    app.state.lifespan_shutdown = True


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Invalid evaluation request", "message": details},
    )
