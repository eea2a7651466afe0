"""
Persistence stores for habits, days and completion marks.

MongoStore talks to MongoDB through PyMongo's asyncio client. MemoryStore keeps
everything in process and backs local runs and the test-suite. Both expose the
same coroutine API and raise the errors in errors.py.
"""
import logging
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from daykeys import weekday_of
from errors import ConflictError, StorageError
from schemas import Day, DayHabit, Habit, SummaryEntry

logger = logging.getLogger(__name__)

HABIT_ORDER = [("created_at", ASCENDING), ("title", ASCENDING), ("_id", ASCENDING)]


def new_id() -> str:
    return str(uuid.uuid4())


def _habit_sort_key(habit: Habit):
    return habit.created_at, habit.title, habit.id


def summary_pipeline() -> list:
    """Aggregation over "day" yielding one summary row per stored day.

    The weekday of a stored date is ``$dayOfWeek - 1`` (UTC, Sunday=0), the
    same numbering daykeys.weekday_of produces.
    """
    return [
        {"$sort": {"date": ASCENDING}},
        {"$lookup": {
            "from": "day_habit",
            "let": {"day_id": "$_id"},
            "pipeline": [
                {"$match": {"$expr": {"$eq": ["$day_id", "$$day_id"]}}},
                {"$count": "n"},
            ],
            "as": "completed",
        }},
        {"$lookup": {
            "from": "habit",
            "let": {
                "date": "$date",
                "week_day": {"$subtract": [{"$dayOfWeek": "$date"}, 1]},
            },
            "pipeline": [
                {"$match": {"$expr": {"$and": [
                    {"$lte": ["$created_at", "$$date"]},
                    {"$in": ["$$week_day", "$week_days"]},
                ]}}},
                {"$count": "n"},
            ],
            "as": "amount",
        }},
        {"$project": {
            "_id": 0,
            "id": "$_id",
            "date": 1,
            "completed": {"$toDouble": {"$ifNull": [{"$first": "$completed.n"}, 0]}},
            "amount": {"$toDouble": {"$ifNull": [{"$first": "$amount.n"}, 0]}},
        }},
    ]


@contextmanager
def storage_errors(operation: str):
    try:
        yield
    except DuplicateKeyError as exc:
        raise ConflictError(f"Duplicate key during {operation}") from exc
    except PyMongoError as exc:
        logger.exception("MongoDB %s failed", operation)
        raise StorageError(f"Storage unavailable during {operation}") from exc


class MongoStore:
    def __init__(self, url: str, name: str):
        self.url = url
        self.name = name
        self.client: Optional[AsyncMongoClient] = None
        self.db = None

    async def connect(self):
        self.client = AsyncMongoClient(self.url, tz_aware=True)
        self.db = self.client[self.name]
        with storage_errors("index creation"):
            await self.db["day"].create_index("date", unique=True)
            await self.db["day_habit"].create_index(
                [("day_id", ASCENDING), ("habit_id", ASCENDING)], unique=True
            )
            await self.db["habit"].create_index([("week_days", ASCENDING), ("created_at", ASCENDING)])
        logger.info("Connected to MongoDB database %s", self.name)

    async def close(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")

    async def ping(self) -> bool:
        with storage_errors("ping"):
            await self.client.admin.command("ping")
        return True

    # Habits
    async def insert_habit(self, title: str, week_days: List[int], created_at: datetime) -> Habit:
        doc = {"_id": new_id(), "title": title, "created_at": created_at, "week_days": week_days}
        with storage_errors("habit insert"):
            await self.db["habit"].insert_one(doc)
        return _to_habit(doc)

    async def get_habit(self, habit_id: str) -> Optional[Habit]:
        with storage_errors("habit lookup"):
            doc = await self.db["habit"].find_one({"_id": habit_id})
        return _to_habit(doc) if doc else None

    async def find_habits(self, on_date: datetime, week_day: int) -> List[Habit]:
        query = {"created_at": {"$lte": on_date}, "week_days": week_day}
        with storage_errors("habit query"):
            docs = await self.db["habit"].find(query).sort(HABIT_ORDER).to_list(None)
        return [_to_habit(doc) for doc in docs]

    # Days
    async def upsert_day(self, day_key: datetime) -> Day:
        with storage_errors("day upsert"):
            doc = await self.db["day"].find_one_and_update(
                {"date": day_key},
                {"$setOnInsert": {"_id": new_id()}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return Day(id=doc["_id"], date=doc["date"])

    async def find_day(self, day_key: datetime) -> Optional[Day]:
        with storage_errors("day lookup"):
            doc = await self.db["day"].find_one({"date": day_key})
        return Day(id=doc["_id"], date=doc["date"]) if doc else None

    async def count_days(self) -> int:
        with storage_errors("day count"):
            return await self.db["day"].count_documents({})

    # Completion marks
    async def list_marks(self, day_id: str) -> Set[str]:
        with storage_errors("mark query"):
            docs = await self.db["day_habit"].find({"day_id": day_id}, {"habit_id": 1}).to_list(None)
        return {doc["habit_id"] for doc in docs}

    async def insert_mark(self, day_id: str, habit_id: str) -> DayHabit:
        doc = {"_id": new_id(), "day_id": day_id, "habit_id": habit_id}
        with storage_errors("mark insert"):
            await self.db["day_habit"].insert_one(doc)
        return DayHabit(id=doc["_id"], day_id=day_id, habit_id=habit_id)

    async def delete_mark(self, day_id: str, habit_id: str) -> bool:
        with storage_errors("mark delete"):
            result = await self.db["day_habit"].delete_one({"day_id": day_id, "habit_id": habit_id})
        return result.deleted_count == 1

    async def summarize(self) -> List[SummaryEntry]:
        with storage_errors("summary"):
            cursor = await self.db["day"].aggregate(summary_pipeline())
            rows = await cursor.to_list(None)
        return [SummaryEntry(**row) for row in rows]


class MemoryStore:
    """In-process store; every mutation completes without yielding to the loop."""

    def __init__(self):
        self.habits: Dict[str, Habit] = {}
        self.days: Dict[datetime, Day] = {}
        self.marks: Dict[Tuple[str, str], DayHabit] = {}

    async def connect(self):
        logger.info("Using in-memory store")

    async def close(self):
        self.habits.clear()
        self.days.clear()
        self.marks.clear()

    async def ping(self) -> bool:
        return True

    async def insert_habit(self, title: str, week_days: List[int], created_at: datetime) -> Habit:
        habit = Habit(id=new_id(), title=title, created_at=created_at, week_days=week_days)
        self.habits[habit.id] = habit
        return habit

    async def get_habit(self, habit_id: str) -> Optional[Habit]:
        return self.habits.get(habit_id)

    async def find_habits(self, on_date: datetime, week_day: int) -> List[Habit]:
        found = [
            habit for habit in self.habits.values()
            if habit.created_at <= on_date and week_day in habit.week_days
        ]
        return sorted(found, key=_habit_sort_key)

    async def upsert_day(self, day_key: datetime) -> Day:
        day = self.days.get(day_key)
        if day is None:
            day = self.days[day_key] = Day(id=new_id(), date=day_key)
        return day

    async def find_day(self, day_key: datetime) -> Optional[Day]:
        return self.days.get(day_key)

    async def count_days(self) -> int:
        return len(self.days)

    async def list_marks(self, day_id: str) -> Set[str]:
        return {habit_id for (mark_day, habit_id) in self.marks if mark_day == day_id}

    async def insert_mark(self, day_id: str, habit_id: str) -> DayHabit:
        key = (day_id, habit_id)
        if key in self.marks:
            raise ConflictError(f"Habit {habit_id} already marked on day {day_id}")
        mark = self.marks[key] = DayHabit(id=new_id(), day_id=day_id, habit_id=habit_id)
        return mark

    async def delete_mark(self, day_id: str, habit_id: str) -> bool:
        return self.marks.pop((day_id, habit_id), None) is not None

    async def summarize(self) -> List[SummaryEntry]:
        completed = Counter(day_id for (day_id, _) in self.marks)
        by_week_day = defaultdict(list)
        for habit in self.habits.values():
            for week_day in habit.week_days:
                by_week_day[week_day].append(habit.created_at)

        entries = []
        for day in sorted(self.days.values(), key=lambda d: d.date):
            created = by_week_day[weekday_of(day.date)]
            entries.append(SummaryEntry(
                id=day.id,
                date=day.date,
                completed=float(completed[day.id]),
                amount=float(sum(1 for created_at in created if created_at <= day.date)),
            ))
        return entries


def create_store(url: str, name: str):
    if url.startswith("memory://"):
        return MemoryStore()
    if url.startswith(("mongodb://", "mongodb+srv://")):
        return MongoStore(url, name)
    raise ValueError(f"Unsupported DATABASE_URL scheme: {url}")


def _to_habit(doc: dict) -> Habit:
    return Habit(id=doc["_id"], title=doc["title"], created_at=doc["created_at"], week_days=doc["week_days"])
