"""
Error taxonomy for the habit tracker.

Routes and services raise these; main.py maps them to HTTP responses.
"""


class HabitTrackerError(Exception):
    """Base class for every error raised by the service"""
    status_code = 500


class ValidationError(HabitTrackerError):
    """Malformed input: bad shape, out-of-range weekday, unparsable date"""
    status_code = 400


class NotFoundError(HabitTrackerError):
    """A referenced record does not exist"""
    status_code = 404


class ConflictError(HabitTrackerError):
    """A unique key was taken by a concurrent writer"""
    status_code = 409


class StorageError(HabitTrackerError):
    """The persistence layer failed or is unreachable"""
    status_code = 503
