import os
import logging
from contextlib import asynccontextmanager
from typing import List
from uuid import UUID

from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from daykeys import parse_timestamp, utc_now
from database import create_store
from errors import HabitTrackerError, StorageError
from schemas import DayView, Habit, HabitIn, SummaryEntry, ToggleResult
from services import CompletionLedger, DayReconciliationService, HabitRepository, SummaryAggregator

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = create_store(os.getenv("DATABASE_URL", "memory://"), os.getenv("DATABASE_NAME", "habits"))
    await store.connect()
    app.state.store = store
    try:
        yield
    finally:
        await store.close()


# App setup
app = FastAPI(title="Habit Tracker API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
@app.exception_handler(HabitTrackerError)
async def habit_tracker_error_handler(request: Request, exc: HabitTrackerError):
    # storage failures are already logged with a traceback by the store
    if not isinstance(exc, StorageError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("%s %s invalid request", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in exc.errors()]


# Dependencies
def get_store(request: Request):
    return request.app.state.store


def get_clock():
    return utc_now


def get_reconciler(store=Depends(get_store), clock=Depends(get_clock)) -> DayReconciliationService:
    return DayReconciliationService(HabitRepository(store, clock), CompletionLedger(store), clock)


def get_aggregator(store=Depends(get_store)) -> SummaryAggregator:
    return SummaryAggregator(store)


@app.get("/")
def read_root():
    return {"message": "Habit tracker backend running"}


@app.get("/api/version")
def version():
    return {"version": os.getenv("APP_VERSION", "0.1.0")}


@app.get("/health")
async def health(store=Depends(get_store)):
    try:
        await store.ping()
    except StorageError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "storage": "unavailable"},
        )
    return {"status": "ok", "storage": type(store).__name__}


# Habits
@app.post("/habits", response_model=Habit)
async def create_habit(body: HabitIn, store=Depends(get_store), clock=Depends(get_clock)):
    return await HabitRepository(store, clock).create_habit(body.title, body.week_days)


@app.patch("/habits/{habit_id}/toggle", response_model=ToggleResult)
async def toggle_habit(habit_id: UUID, reconciler: DayReconciliationService = Depends(get_reconciler)):
    return await reconciler.toggle_habit(str(habit_id))


# Days
@app.get("/day", response_model=DayView)
async def get_day(date: str = Query(...), reconciler: DayReconciliationService = Depends(get_reconciler)):
    return await reconciler.get_day(parse_timestamp(date))


@app.get("/summary", response_model=List[SummaryEntry])
async def summary(aggregator: SummaryAggregator = Depends(get_aggregator)):
    return await aggregator.summary()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)
