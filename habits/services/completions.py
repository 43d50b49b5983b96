import logging

from django.db import DatabaseError, transaction

from habits.exceptions import ComputationError, NotFoundError, ValidationError
from habits.models import Habit, HabitLog
from habits.services import recalculation
from habits.services.consistency import habit_consistency_score
from habits.services.dates import parse_day, parse_range
from habits.services.habit_stats import persisted_streak, with_habit_stats

logger = logging.getLogger(__name__)


def get_owned_habit(habit_id, owner) -> Habit:
    try:
        return with_habit_stats(Habit.objects.select_related("streak")).get(pk=habit_id, owner=owner)
    except (Habit.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"habit {habit_id} not found")


def _validate_count(count) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError("count must be an integer")
    if count < 1:
        raise ValidationError("count must be at least 1")
    return count


def log_completion(habit_id, owner, day, count: int = 1, notes: str = "") -> HabitLog:
    """
    Record a completion and refresh the habit's streak in one transaction.

    Nothing is written if validation fails, and a failure while updating
    the streak discards the new log as well.
    """
    log_date = parse_day(day)
    count = _validate_count(count)
    habit = get_owned_habit(habit_id, owner)

    try:
        with transaction.atomic():
            log = HabitLog.objects.create(
                habit=habit,
                date=log_date,
                completed_count=count,
                notes=notes or "",
            )
            recalculation.recalculate_one(habit.pk)
    except DatabaseError as exc:
        logger.exception("Logging completion failed for habit %s", habit.pk)
        raise ComputationError(f"could not log completion for habit {habit.pk}") from exc

    logger.info("Logged %d completion(s) for habit %s on %s", count, habit.pk, log_date)
    return log


def get_streak(habit_id, owner) -> dict:
    habit = get_owned_habit(habit_id, owner)
    return persisted_streak(habit).as_dict()


def get_consistency_score(habit_id, owner, start, end) -> float:
    start_date, end_date = parse_range(start, end)
    habit = get_owned_habit(habit_id, owner)
    return habit_consistency_score(habit, start_date, end_date)
