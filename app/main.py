import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)

from app.api.feed import router as feed_router
from app.api.requests import router as requests_router
from app.api.settings import router as settings_router
from app.api.technicians import router as technicians_router
from app.db.session import engine
from app.models import Base
from app.services.errors import DispatchError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(title="Dispatch", version="0.1.0", lifespan=lifespan)

app.include_router(requests_router)
app.include_router(technicians_router)
app.include_router(settings_router)
app.include_router(feed_router)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


@app.get("/health")
async def health():
    return {"status": "ok"}
