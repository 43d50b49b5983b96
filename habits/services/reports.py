"""
Windowed habit report: one row per habit plus a summary across them.

``generate_report`` recalculates every streak for the user and then reads
the rows and the summary inside the same transaction, so the numbers never
lag behind the logs. Rows and summary come from two independent query
functions over the same scoped queryset.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from django.db import transaction
from django.db.models import Avg, Count, Max, Q, QuerySet, Sum
from django.utils import timezone

from habits.exceptions import NotFoundError
from habits.models import Category, Habit
from habits.services import recalculation
from habits.services.dates import months_between, parse_range
from habits.services.habit_stats import persisted_streak

logger = logging.getLogger(__name__)

TREND_WINDOW_DAYS = 7


def scoped_habits(user, start_date: date, end_date: date, category_id=None, *, today: date) -> QuerySet:
    """
    The user's habits (optionally one category) annotated with log stats.

    In-range figures cover ``[start_date, end_date]``; the trend counts are
    anchored to ``today`` regardless of the report window.
    """
    in_range = Q(logs__date__range=(start_date, end_date))
    recent = Q(logs__date__range=(today - timedelta(days=TREND_WINDOW_DAYS - 1), today))
    previous = Q(logs__date__range=(
        today - timedelta(days=2 * TREND_WINDOW_DAYS - 1),
        today - timedelta(days=TREND_WINDOW_DAYS),
    ))

    qs = Habit.objects.filter(owner=user)
    if category_id is not None:
        qs = qs.filter(category_id=category_id)

    return (
        qs.select_related("category", "streak")
        .annotate(
            completion_count_anno=Count("logs", filter=in_range),
            avg_completion_anno=Avg("logs__completed_count", filter=in_range),
            total_completions_anno=Sum("logs__completed_count", filter=in_range),
            last_log_date_anno=Max("logs__date", filter=in_range),
            recent_count_anno=Count("logs", filter=recent),
            previous_count_anno=Count("logs", filter=previous),
        )
        .order_by("name")
    )


def period_length(habit: Habit, start_date: date, today: date) -> float:
    """
    Expected periods for the completion-rate denominator.

    The span runs from the later of the habit start and the report start up
    to today (or the habit end, if earlier). It deliberately ignores the
    report's end date.
    """
    span_start = max(habit.start_date, start_date)
    span_end = min(today, habit.end_date or today)

    if habit.frequency == Habit.Frequency.DAILY:
        periods = (span_end - span_start).days
    elif habit.frequency == Habit.Frequency.WEEKLY:
        periods = (span_end - span_start).days / 7
    else:
        periods = months_between(span_start, span_end)
    return max(1, periods)


def completion_rate(habit: Habit, total_completions: int, start_date: date, today: date) -> float:
    target = max(habit.target_count, 1)
    return total_completions / (period_length(habit, start_date, today) * target)


def _habit_row(habit: Habit, start_date: date, today: date) -> dict:
    streak = persisted_streak(habit)
    total = int(habit.total_completions_anno or 0)
    last_log = habit.last_log_date_anno
    category = habit.category

    return {
        "habit_id": habit.pk,
        "habit_name": habit.name,
        "description": habit.description,
        "frequency": habit.frequency,
        "target_count": habit.target_count,
        "start_date": habit.start_date,
        "end_date": habit.end_date,
        "category_name": category.name if category else None,
        "category_color": category.color if category else None,
        "completion_count": habit.completion_count_anno,
        "avg_completion": float(habit.avg_completion_anno or 0),
        "total_completions": total,
        "current_streak": streak.current,
        "longest_streak": streak.longest,
        "completion_rate": completion_rate(habit, total, start_date, today),
        "days_since_last_completion": (today - last_log).days if last_log else None,
        "recent_trend": habit.recent_count_anno - habit.previous_count_anno,
    }


def habit_rows(habits: QuerySet, start_date: date, *, today: date) -> list[dict]:
    """Per-habit rows, best completion rate first, then by name."""
    rows = [_habit_row(h, start_date, today) for h in habits]
    rows.sort(key=lambda r: (-r["completion_rate"], r["habit_name"]))
    return rows


def summary_row(habits: QuerySet, start_date: date, *, today: date) -> dict:
    total_habits = 0
    active_habits = 0
    current_streaks = []
    max_streak = 0
    daily_rates = []
    category_logs: dict[int, list] = {}

    for habit in habits:
        total_habits += 1
        logs_in_range = habit.completion_count_anno
        if logs_in_range > 0:
            active_habits += 1

        streak = persisted_streak(habit)
        current_streaks.append(streak.current)
        max_streak = max(max_streak, streak.longest)

        if habit.frequency == Habit.Frequency.DAILY:
            total = int(habit.total_completions_anno or 0)
            daily_rates.append(completion_rate(habit, total, start_date, today))

        if habit.category is not None:
            # dicts keep insertion order, so ties go to the first category seen
            entry = category_logs.setdefault(habit.category_id, [habit.category.name, 0])
            entry[1] += logs_in_range

    most_active = None
    best = -1
    for name, count in category_logs.values():
        if count > best:
            most_active, best = name, count

    return {
        "total_habits": total_habits,
        "active_habits": active_habits,
        "avg_current_streak": sum(current_streaks) / len(current_streaks) if current_streaks else 0.0,
        "max_streak": max_streak,
        "avg_daily_completion_rate": sum(daily_rates) / len(daily_rates) if daily_rates else 0.0,
        "total_categories": len(category_logs),
        "most_active_category": most_active,
    }


def _resolve_category(user, category_id):
    if category_id in (None, ""):
        return None
    try:
        return Category.objects.get(pk=category_id, owner=user).pk
    except (Category.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"category {category_id} not found")


def generate_report(user, start_date, end_date, category_id=None, *, today: Optional[date] = None) -> dict:
    """
    Build the report for ``user`` over ``[start_date, end_date]``.

    Streaks are recalculated first. A habit whose recalculation fails keeps
    its last persisted streak and is listed under ``failures``.
    """
    start, end = parse_range(start_date, end_date)
    category_pk = _resolve_category(user, category_id)
    today = today or timezone.localdate()

    with transaction.atomic():
        failures = recalculation.recalculate_all(user)
        habits = scoped_habits(user, start, end, category_pk, today=today)
        rows = habit_rows(habits, start, today=today)
        summary = summary_row(habits.all(), start, today=today)

    logger.info(
        "Report for user %s (%s..%s, category=%s): %d habits",
        user.pk, start, end, category_pk, len(rows),
    )
    return {
        "habits": rows,
        "summary": summary,
        "failures": [(f.habit_id, f.message) for f in failures],
    }
