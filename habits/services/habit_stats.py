from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from django.db.models import Avg, Count, F, IntegerField, Q, Sum, Value
from django.db.models.functions import Coalesce

from habits.models import Category, Habit, HabitLog


@dataclass(frozen=True)
class StreakResult:
    current: int
    longest: int
    last_date: Optional[date]

    def as_dict(self) -> dict:
        return {
            "current": self.current,
            "longest": self.longest,
            "last_logged_date": self.last_date,
        }


EMPTY_STREAK = StreakResult(current=0, longest=0, last_date=None)


def completion_dates(habit_id) -> set:
    """Distinct days on which the habit has at least one completion."""
    return set(
        HabitLog.objects.filter(habit_id=habit_id, completed_count__gte=1)
        .order_by("date")
        .values_list("date", flat=True)
        .distinct()
    )


def compute_streak(dates: Iterable[date]) -> StreakResult:
    """
    Current and longest consecutive-day runs for a set of completion days.

    ``current`` is the run ending at the latest logged day, not at today:
    a habit last done a week ago still reports the length of its last run.
    ``longest`` is the best run anywhere in the history.
    """
    days = sorted(set(dates))
    if not days:
        return EMPTY_STREAK

    last = days[-1]
    present = set(days)
    current = 0
    day = last
    while day in present:
        current += 1
        day -= timedelta(days=1)

    best = 1
    cur = 1
    for prev, nxt in zip(days, days[1:]):
        if nxt == prev + timedelta(days=1):
            cur += 1
            if cur > best:
                best = cur
        else:
            cur = 1

    return StreakResult(current=current, longest=best, last_date=last)


def persisted_streak(habit: Habit) -> StreakResult:
    streak = getattr(habit, "streak", None)
    if streak is None:
        return EMPTY_STREAK
    return StreakResult(
        current=streak.current_streak,
        longest=streak.longest_streak,
        last_date=streak.last_logged_date,
    )


def _log_window(prefix: str, start: Optional[date], end: Optional[date]) -> Q:
    q = Q()
    if start is not None:
        q &= Q(**{f"{prefix}date__gte": start})
    if end is not None:
        q &= Q(**{f"{prefix}date__lte": end})
    return q


def habit_summaries(user, start: Optional[date] = None, end: Optional[date] = None) -> list[dict]:
    """
    Per-habit log volume and streaks for the quick stats view.

    Bounds only filter the logs; habits with nothing logged still appear.
    """
    window = _log_window("logs__", start, end) or None
    qs = (
        Habit.objects.filter(owner=user)
        .annotate(
            total_logs_anno=Count("logs", filter=window),
            avg_completion_anno=Avg("logs__completed_count", filter=window),
            current_streak_anno=Coalesce(F("streak__current_streak"), Value(0)),
            longest_streak_anno=Coalesce(F("streak__longest_streak"), Value(0)),
        )
        .order_by("-total_logs_anno", "name")
    )
    return [
        {
            "habit_id": h.pk,
            "name": h.name,
            "total_logs": h.total_logs_anno,
            "avg_completion": float(h.avg_completion_anno or 0),
            "current_streak": h.current_streak_anno,
            "longest_streak": h.longest_streak_anno,
        }
        for h in qs
    ]


def category_summaries(user, start: Optional[date] = None, end: Optional[date] = None) -> list[dict]:
    window = _log_window("habits__logs__", start, end) or None
    qs = (
        Category.objects.filter(owner=user)
        .annotate(
            total_habits_anno=Count("habits", distinct=True),
            total_logs_anno=Count("habits__logs", filter=window),
            avg_completion_anno=Avg("habits__logs__completed_count", filter=window),
        )
        .order_by("name")
    )
    return [
        {
            "category_id": c.pk,
            "name": c.name,
            "total_habits": c.total_habits_anno,
            "total_logs": c.total_logs_anno,
            "avg_completion": float(c.avg_completion_anno or 0),
        }
        for c in qs
    ]


def with_habit_stats(qs):
    """
    Adds annotations used by derived GraphQL fields.

    - lifetime_completions_anno
    """
    return qs.annotate(
        lifetime_completions_anno=Coalesce(Sum("logs__completed_count"), Value(0), output_field=IntegerField()),
    )


def total_completions(habit: Habit, start: Optional[date] = None, end: Optional[date] = None) -> int:
    """Sum of completed counts, so same-day duplicates add up."""
    if start is None and end is None:
        val = getattr(habit, "lifetime_completions_anno", None)
        if val is not None:
            return int(val)
    agg = habit.logs.filter(_log_window("", start, end)).aggregate(total=Sum("completed_count"))
    return int(agg["total"] or 0)
