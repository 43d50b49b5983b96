import logging
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError, IntegrityError, transaction

from habits.exceptions import ComputationError, ConflictError
from habits.models import Habit, Streak
from habits.services.habit_stats import StreakResult, completion_dates, compute_streak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationFailure:
    habit_id: int
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error) or self.error.__class__.__name__


@transaction.atomic
def _upsert_streak(habit_id, computed: StreakResult) -> StreakResult:
    streak, created = Streak.objects.select_for_update().get_or_create(
        habit_id=habit_id,
        defaults={
            "current_streak": computed.current,
            "longest_streak": computed.longest,
            "last_logged_date": computed.last_date,
        },
    )
    if not created:
        # historical maxima survive even if logs were removed since
        streak.current_streak = computed.current
        streak.longest_streak = max(computed.longest, streak.longest_streak)
        streak.last_logged_date = computed.last_date
        streak.save(update_fields=["current_streak", "longest_streak", "last_logged_date", "updated_at"])

    return StreakResult(
        current=streak.current_streak,
        longest=streak.longest_streak,
        last_date=streak.last_logged_date,
    )


def recalculate_one(habit_id) -> Optional[StreakResult]:
    """
    Rebuild one habit's streak row from its full completion history.

    Returns the persisted result, or None without touching the store when
    the habit has never been completed.
    """
    dates = completion_dates(habit_id)
    if not dates:
        return None

    computed = compute_streak(dates)
    try:
        return _upsert_streak(habit_id, computed)
    except IntegrityError as exc:
        raise ConflictError(f"streak for habit {habit_id} was written concurrently") from exc
    except DatabaseError as exc:
        raise ComputationError(f"could not persist streak for habit {habit_id}") from exc


def recalculate_all(user) -> list[RecalculationFailure]:
    """
    Recalculate every habit the user owns.

    Each habit runs in its own savepoint; one failing habit is logged and
    reported without stopping the rest.
    """
    failures: list[RecalculationFailure] = []
    habit_ids = list(Habit.objects.filter(owner=user).order_by("pk").values_list("pk", flat=True))

    for habit_id in habit_ids:
        try:
            with transaction.atomic():
                recalculate_one(habit_id)
        except Exception as exc:
            logger.exception("Streak recalculation failed for habit %s", habit_id)
            failures.append(RecalculationFailure(habit_id=habit_id, error=exc))

    logger.info(
        "Recalculated streaks for user %s: %d habits, %d failed",
        user.pk, len(habit_ids), len(failures),
    )
    return failures
