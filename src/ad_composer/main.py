"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ad_composer.api.routes import router
from ad_composer.config import settings
from ad_composer.errors import IllegalTransitionError, PreconditionError

logger = structlog.get_logger()

_OUTPUT_DIR = Path(settings.output_base_dir)

_LOCAL_UI_ORIGINS = {"http://localhost:3000", "http://127.0.0.1:3000"}


def _allowed_origins() -> list[str]:
    extra = {o.strip() for o in settings.allowed_origins.split(",") if o.strip()}
    return sorted(_LOCAL_UI_ORIGINS | extra)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "app.startup",
        allowed_origins=_allowed_origins(),
        output_dir=str(_OUTPUT_DIR.resolve()),
        image_model=settings.image_model,
        video_model=settings.video_model,
    )
    yield
    logger.info("app.shutdown")


app = FastAPI(
    title="Ad Composer",
    description="Per-scene ad asset pipeline and branded video export",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # Lets the UI read the export filename from the download response
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(PreconditionError)
async def precondition_failed(request: Request, exc: PreconditionError):
    # Routes map the expected cases; this catches the rest (e.g. a batch racing a retry).
    logger.warning("app.precondition_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(IllegalTransitionError)
async def illegal_transition(request: Request, exc: IllegalTransitionError):
    logger.error("app.illegal_transition", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=409, content={"detail": str(exc)})


app.include_router(router)

_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/files/output", StaticFiles(directory=str(_OUTPUT_DIR)), name="output")


@app.get("/health")
async def health_check():
    return {"status": "ok"}
