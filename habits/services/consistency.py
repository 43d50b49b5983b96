import math
from datetime import date

from habits.exceptions import InvalidRangeError
from habits.models import Habit

MAX_SCORE = 100.0


def expected_completions(frequency: str, total_days: int) -> int:
    if frequency == Habit.Frequency.WEEKLY:
        return math.ceil(total_days / 7)
    if frequency == Habit.Frequency.MONTHLY:
        return math.ceil(total_days / 30)
    # daily, and anything unrecognised
    return total_days


def consistency_score(
        frequency: str,
        target_count: int,
        start_date: date,
        end_date: date,
        completed_day_count: int,
) -> float:
    """
    Completed days as a percentage of the days the frequency expects.

    ``target_count`` is accepted for symmetry with the habit definition but
    does not change the score. Over-logging is capped at 100.
    """
    if end_date < start_date:
        raise InvalidRangeError(f"end_date {end_date} is before start_date {start_date}")

    total_days = (end_date - start_date).days + 1
    expected = expected_completions(frequency, total_days)
    if expected == 0:
        return 0.0

    score = completed_day_count / expected * 100
    return min(score, MAX_SCORE)


def habit_consistency_score(habit: Habit, start_date: date, end_date: date) -> float:
    # reversed ranges are rejected by consistency_score
    actual = (
        habit.logs.filter(date__range=(start_date, end_date), completed_count__gte=1)
        .order_by()
        .values("date")
        .distinct()
        .count()
    )
    return consistency_score(habit.frequency, habit.target_count, start_date, end_date, actual)
