from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tgquiz.config import get_settings
from tgquiz.database import engine, init_db
from tgquiz.log import get_logger
from tgquiz.routers import auth, tests, results, subscription, admin, notify, ai

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.run_migrations:
        log.info("Running migrations...")
        init_db()
    yield
    engine.dispose()
    log.info("Database pool closed")


app = FastAPI(
    title="TG Quiz",
    description="Telegram Mini App quiz backend",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(tests.router)
app.include_router(results.router)
app.include_router(subscription.router)
app.include_router(admin.router)
app.include_router(notify.router)
app.include_router(ai.router)


def _invalid_field(exc: RequestValidationError) -> str:
    # loc is (source, field, ...nested parts); report the top-level field
    for error in exc.errors():
        loc = error.get("loc", ())
        if len(loc) > 1 and isinstance(loc[1], str):
            return loc[1]
    return "request body"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"Invalid {_invalid_field(exc)}"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error"},
    )


@app.get("/health")
async def health():
    return {"ok": True}


def run():
    settings = get_settings()
    uvicorn.run("tgquiz.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    run()
