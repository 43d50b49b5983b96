"""Error kinds raised by the streak and report services."""


class HabitTrackerError(Exception):
    pass


class ValidationError(HabitTrackerError):
    """Bad input detected before any write (dates, counts)."""


class InvalidRangeError(ValidationError):
    pass


class NotFoundError(HabitTrackerError):
    """Habit or category is missing or owned by someone else."""


class ConflictError(HabitTrackerError):
    pass


class ComputationError(HabitTrackerError):
    """Unexpected failure while computing or persisting derived data."""
