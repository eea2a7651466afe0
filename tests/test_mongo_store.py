import os
import uuid
from datetime import datetime, timezone

import pytest

from database import MemoryStore, MongoStore, create_store, summary_pipeline
from errors import ConflictError

MONGO_TEST_URL = os.getenv("MONGO_TEST_URL")
needs_mongo = pytest.mark.skipif(not MONGO_TEST_URL, reason="MONGO_TEST_URL not set")

UTC = timezone.utc


def test_create_store_picks_backend():
    assert isinstance(create_store("memory://", "habits"), MemoryStore)
    assert isinstance(create_store("mongodb://localhost:27017", "habits"), MongoStore)
    with pytest.raises(ValueError):
        create_store("postgres://localhost", "habits")


def test_summary_pipeline_uses_sunday_zero_weekday():
    habit_lookup = summary_pipeline()[2]["$lookup"]
    assert habit_lookup["from"] == "habit"
    assert habit_lookup["let"]["week_day"] == {"$subtract": [{"$dayOfWeek": "$date"}, 1]}


@pytest.fixture
async def mongo():
    store = MongoStore(MONGO_TEST_URL, f"habits_test_{uuid.uuid4().hex[:8]}")
    await store.connect()
    yield store
    await store.client.drop_database(store.name)
    await store.close()


@needs_mongo
@pytest.mark.anyio
async def test_mongo_round_trip(mongo):
    monday = datetime(2024, 1, 1, tzinfo=UTC)
    wednesday = datetime(2024, 1, 3, tzinfo=UTC)
    exercise = await mongo.insert_habit("Exercise", [1, 3, 5], monday)
    await mongo.insert_habit("Sunday", [0], monday)
    late = await mongo.insert_habit("Late", [3], datetime(2024, 1, 10, tzinfo=UTC))

    assert [h.id for h in await mongo.find_habits(wednesday, 3)] == [exercise.id]
    assert await mongo.find_day(wednesday) is None

    day = await mongo.upsert_day(wednesday)
    assert (await mongo.upsert_day(wednesday)).id == day.id
    await mongo.insert_mark(day.id, exercise.id)
    with pytest.raises(ConflictError):
        await mongo.insert_mark(day.id, exercise.id)
    assert await mongo.list_marks(day.id) == {exercise.id}

    [entry] = await mongo.summarize()
    assert (entry.id, entry.date, entry.completed, entry.amount) == (day.id, wednesday, 1.0, 1.0)

    later_day = await mongo.upsert_day(datetime(2024, 1, 10, tzinfo=UTC))
    await mongo.insert_mark(later_day.id, late.id)
    entries = await mongo.summarize()
    assert [(e.date, e.completed, e.amount) for e in entries] == [
        (wednesday, 1.0, 1.0),
        (datetime(2024, 1, 10, tzinfo=UTC), 1.0, 2.0),
    ]

    assert await mongo.delete_mark(day.id, exercise.id) is True
    assert await mongo.delete_mark(day.id, exercise.id) is False
