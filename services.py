"""
Habit applicability and completion reconciliation.

HabitRepository owns habits, CompletionLedger owns days and completion marks.
DayReconciliationService and SummaryAggregator only read across them.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set

from daykeys import normalize_day, utc_now, weekday_of
from errors import ConflictError, NotFoundError, ValidationError
from schemas import Day, DayView, Habit, SummaryEntry, ToggleResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class HabitRepository:
    def __init__(self, store, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def create_habit(self, title: str, week_days: Iterable[int]) -> Habit:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title must be a non-empty string")
        days = list(week_days or [])
        if not days:
            raise ValidationError("weekDays must contain at least one weekday")
        for week_day in days:
            if isinstance(week_day, bool) or not isinstance(week_day, int) or not 0 <= week_day <= 6:
                raise ValidationError(f"Invalid weekday {week_day!r}, expected 0..6")

        created_at = normalize_day(self.clock())
        habit = await self.store.insert_habit(title, sorted(set(days)), created_at)
        logger.info("Created habit %s (%s) on %s", habit.id, habit.title, created_at.date())
        return habit

    async def find_applicable(self, on_date: datetime, week_day: int) -> List[Habit]:
        return await self.store.find_habits(on_date, week_day)

    async def get_habit(self, habit_id: str) -> Optional[Habit]:
        return await self.store.get_habit(habit_id)


class CompletionLedger:
    def __init__(self, store):
        self.store = store

    async def get_or_create_day(self, day_key: datetime) -> Day:
        try:
            return await self.store.upsert_day(day_key)
        except ConflictError:
            logger.debug("Day %s created concurrently, fetching existing", day_key.date())
            day = await self.store.find_day(day_key)
            if day is None:
                raise
            return day

    async def find_day(self, day_key: datetime) -> Optional[Day]:
        return await self.store.find_day(day_key)

    async def list_completions(self, day_id: str) -> Set[str]:
        return await self.store.list_marks(day_id)

    async def toggle(self, day_id: str, habit_id: str) -> ToggleResult:
        if await self.store.delete_mark(day_id, habit_id):
            return ToggleResult(completed=False)
        try:
            await self.store.insert_mark(day_id, habit_id)
        except ConflictError:
            # a concurrent toggle created the mark first
            logger.debug("Mark for habit %s on day %s already present", habit_id, day_id)
        return ToggleResult(completed=True)


class DayReconciliationService:
    """Answers which habits were possible and which were completed on a day."""

    def __init__(self, habits: HabitRepository, ledger: CompletionLedger, clock: Clock = utc_now):
        self.habits = habits
        self.ledger = ledger
        self.clock = clock

    async def get_day(self, raw_date) -> DayView:
        """Possible and completed habits for the day containing ``raw_date``.

        Read-only: a day nobody has toggled yet is not created here.
        """
        day_key = normalize_day(raw_date)
        possible = await self.habits.find_applicable(day_key, weekday_of(day_key))

        day = await self.ledger.find_day(day_key)
        completed = sorted(await self.ledger.list_completions(day.id)) if day else []
        return DayView(possible_habits=possible, completed_habits=completed)

    async def toggle_habit(self, habit_id: str) -> ToggleResult:
        if await self.habits.get_habit(habit_id) is None:
            raise NotFoundError(f"Habit {habit_id} not found")

        today = normalize_day(self.clock())
        day = await self.ledger.get_or_create_day(today)
        result = await self.ledger.toggle(day.id, habit_id)
        logger.info("Habit %s on %s completed=%s", habit_id, today.date(), result.completed)
        return result


class SummaryAggregator:
    def __init__(self, store):
        self.store = store

    async def summary(self) -> List[SummaryEntry]:
        return await self.store.summarize()
