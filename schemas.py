"""
Database Schemas for the habit tracker

Each record model maps to a MongoDB collection: Habit -> "habit",
Day -> "day", DayHabit -> "day_habit". Field aliases are the camelCase
names used on the wire.
"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Habit(Record):
    id: str = Field(..., description="Habit id (uuid4 string)")
    title: str = Field(..., min_length=1)
    created_at: datetime = Field(..., alias="createdAt", description="UTC day-key of creation")
    week_days: List[int] = Field(..., alias="weekDays", description="0=Sunday..6=Saturday, sorted")


class Day(Record):
    id: str = Field(..., description="Day id (uuid4 string)")
    date: datetime = Field(..., description="UTC day-key, unique")


class DayHabit(Record):
    id: str
    day_id: str = Field(..., alias="dayId")
    habit_id: str = Field(..., alias="habitId")


class HabitIn(Record):
    title: str = Field(..., min_length=1, max_length=200)
    week_days: List[StrictInt] = Field(..., alias="weekDays", min_length=1)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value

    @field_validator("week_days")
    @classmethod
    def week_days_in_range(cls, value: List[int]) -> List[int]:
        for week_day in value:
            if not 0 <= week_day <= 6:
                raise ValueError("week days must be integers between 0 and 6")
        return sorted(set(value))


class DayView(Record):
    possible_habits: List[Habit] = Field(default_factory=list, alias="possibleHabits")
    completed_habits: List[str] = Field(default_factory=list, alias="completedHabits")


class ToggleResult(BaseModel):
    completed: bool


class SummaryEntry(BaseModel):
    id: str
    date: datetime
    completed: float
    amount: float
