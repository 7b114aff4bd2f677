from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from esm.api import endpoints
from esm.constants import DATA_DIR, DATABASE_URL
from esm.core.errors import ESMError
from esm.core.logger import get_logger
from esm.services.reminders import SchedulerNotifier, register_daily_reminders
from esm.services.store import open_store
import os

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if DATABASE_URL.startswith(f"sqlite:///{DATA_DIR.as_posix()}"):
        DATA_DIR.mkdir(parents=True, exist_ok=True)

    with open_store(DATABASE_URL) as store:
        app.state.store = store
        scheduler = AsyncIOScheduler()
        app.state.notifier = SchedulerNotifier(scheduler)
        register_daily_reminders(app.state.notifier)
        scheduler.start()
        try:
            yield
        finally:
            scheduler.shutdown(wait=False)


app = FastAPI(title="ESM Collector", lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "http://localhost:3000")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(endpoints.router)


@app.exception_handler(ESMError)
async def esm_error_handler(request: Request, exc: ESMError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("esm.main:app", host="0.0.0.0", port=8000, reload=True)
