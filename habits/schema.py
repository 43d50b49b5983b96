import graphene
from graphene_django import DjangoObjectType

from .models import Category, Habit, HabitLog
from habits.services import completions, habit_stats, recalculation, reports
from habits.services.dates import parse_optional_day


def _require_user(info):
    user = info.context.user
    if user.is_anonymous:
        raise Exception("Authentication required")
    return user


class StreakType(graphene.ObjectType):
    current = graphene.Int(required=True)
    longest = graphene.Int(required=True)
    last_logged_date = graphene.Date()


class CategoryType(DjangoObjectType):
    class Meta:
        model = Category
        fields = ("id", "name", "color", "created_at")


class HabitType(DjangoObjectType):
    current_streak = graphene.Int()
    longest_streak = graphene.Int()
    last_logged_date = graphene.Date()
    total_completions = graphene.Int()

    class Meta:
        model = Habit
        fields = (
            "id", "name", "description", "category", "frequency", "target_count",
            "start_date", "end_date", "reminder_time", "is_active", "created_at", "logs",
        )
        convert_choices_to_enum = False

    def resolve_current_streak(self, info):
        return habit_stats.persisted_streak(self).current

    def resolve_longest_streak(self, info):
        return habit_stats.persisted_streak(self).longest

    def resolve_last_logged_date(self, info):
        return habit_stats.persisted_streak(self).last_date

    def resolve_total_completions(self, info):
        return habit_stats.total_completions(self)


class HabitLogType(DjangoObjectType):
    class Meta:
        model = HabitLog
        fields = ("id", "habit", "date", "completed_count", "notes", "created_at")


class HabitReportRowType(graphene.ObjectType):
    habit_id = graphene.ID(required=True)
    habit_name = graphene.String(required=True)
    description = graphene.String()
    frequency = graphene.String(required=True)
    target_count = graphene.Int(required=True)
    start_date = graphene.Date()
    end_date = graphene.Date()
    category_name = graphene.String()
    category_color = graphene.String()
    completion_count = graphene.Int(required=True)
    avg_completion = graphene.Float(required=True)
    total_completions = graphene.Int(required=True)
    current_streak = graphene.Int(required=True)
    longest_streak = graphene.Int(required=True)
    completion_rate = graphene.Float(required=True)
    days_since_last_completion = graphene.Int()
    recent_trend = graphene.Int(required=True)


class ReportSummaryType(graphene.ObjectType):
    total_habits = graphene.Int(required=True)
    active_habits = graphene.Int(required=True)
    avg_current_streak = graphene.Float(required=True)
    max_streak = graphene.Int(required=True)
    avg_daily_completion_rate = graphene.Float(required=True)
    total_categories = graphene.Int(required=True)
    most_active_category = graphene.String()


class RecalculationFailureType(graphene.ObjectType):
    habit_id = graphene.ID(required=True)
    message = graphene.String(required=True)


class HabitReportType(graphene.ObjectType):
    habits = graphene.List(graphene.NonNull(HabitReportRowType), required=True)
    summary = graphene.Field(ReportSummaryType, required=True)
    failures = graphene.List(graphene.NonNull(RecalculationFailureType), required=True)

    def resolve_failures(self, info):
        return [RecalculationFailureType(habit_id=h, message=m) for h, m in self["failures"]]


class HabitSummaryType(graphene.ObjectType):
    habit_id = graphene.ID(required=True)
    name = graphene.String(required=True)
    total_logs = graphene.Int(required=True)
    avg_completion = graphene.Float(required=True)
    current_streak = graphene.Int(required=True)
    longest_streak = graphene.Int(required=True)


class CategorySummaryType(graphene.ObjectType):
    category_id = graphene.ID(required=True)
    name = graphene.String(required=True)
    total_habits = graphene.Int(required=True)
    total_logs = graphene.Int(required=True)
    avg_completion = graphene.Float(required=True)


class StatsType(graphene.ObjectType):
    habits = graphene.List(graphene.NonNull(HabitSummaryType), required=True)
    categories = graphene.List(graphene.NonNull(CategorySummaryType), required=True)


class Query(graphene.ObjectType):
    habits = graphene.List(HabitType, active_only=graphene.Boolean(required=False))
    habit = graphene.Field(HabitType, id=graphene.ID(required=True))
    categories = graphene.List(CategoryType)
    streak = graphene.Field(StreakType, habit_id=graphene.ID(required=True))
    consistency_score = graphene.Float(
        habit_id=graphene.ID(required=True),
        start_date=graphene.String(required=True),
        end_date=graphene.String(required=True),
    )
    habit_report = graphene.Field(
        HabitReportType,
        start_date=graphene.String(required=True),
        end_date=graphene.String(required=True),
        category_id=graphene.ID(required=False),
    )
    stats = graphene.Field(
        StatsType,
        start_date=graphene.String(required=False),
        end_date=graphene.String(required=False),
    )

    def resolve_habits(self, info, active_only=None):
        user = info.context.user
        if user.is_anonymous:
            return Habit.objects.none()

        qs = Habit.objects.filter(owner=user).order_by("name")
        if active_only is True:
            qs = qs.filter(is_active=True)
        return habit_stats.with_habit_stats(qs).select_related("category", "streak").prefetch_related("logs")

    def resolve_habit(self, info, id):
        user = _require_user(info)
        return completions.get_owned_habit(id, user)

    def resolve_categories(self, info):
        user = info.context.user
        if user.is_anonymous:
            return Category.objects.none()
        return Category.objects.filter(owner=user).order_by("name")

    def resolve_streak(self, info, habit_id):
        user = _require_user(info)
        return StreakType(**completions.get_streak(habit_id, user))

    def resolve_consistency_score(self, info, habit_id, start_date, end_date):
        user = _require_user(info)
        return completions.get_consistency_score(habit_id, user, start_date, end_date)

    def resolve_habit_report(self, info, start_date, end_date, category_id=None):
        user = _require_user(info)
        return reports.generate_report(user, start_date, end_date, category_id)

    def resolve_stats(self, info, start_date=None, end_date=None):
        user = _require_user(info)
        start = parse_optional_day(start_date, field="start_date")
        end = parse_optional_day(end_date, field="end_date")
        return {
            "habits": habit_stats.habit_summaries(user, start, end),
            "categories": habit_stats.category_summaries(user, start, end),
        }


class LogCompletion(graphene.Mutation):
    class Arguments:
        habit_id = graphene.ID(required=True)
        date = graphene.String(required=True)
        count = graphene.Int(required=False)
        notes = graphene.String(required=False)

    log = graphene.Field(HabitLogType)
    streak = graphene.Field(StreakType)

    @classmethod
    def mutate(cls, root, info, habit_id, date, count=1, notes=""):
        user = _require_user(info)

        log = completions.log_completion(habit_id, user, date, count=count, notes=notes)
        streak = completions.get_streak(habit_id, user)
        return cls(log=log, streak=StreakType(**streak))


class RecalculateStreaks(graphene.Mutation):
    ok = graphene.Boolean(required=True)
    failures = graphene.List(graphene.NonNull(RecalculationFailureType), required=True)

    def mutate(self, info):
        user = _require_user(info)

        failures = recalculation.recalculate_all(user)
        return RecalculateStreaks(
            ok=not failures,
            failures=[RecalculationFailureType(habit_id=f.habit_id, message=f.message) for f in failures],
        )


class Mutation(graphene.ObjectType):
    log_completion = LogCompletion.Field()
    recalculate_streaks = RecalculateStreaks.Field()
