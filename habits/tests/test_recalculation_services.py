from datetime import date, timedelta

import pytest
from django.db import DatabaseError, IntegrityError

from habits.exceptions import ComputationError, ConflictError
from habits.models import Habit, HabitLog, Streak
from habits.services import recalculation
from habits.services.habit_stats import StreakResult

pytestmark = pytest.mark.django_db


@pytest.fixture()
def user(django_user_model):
    return django_user_model.objects.create_user(
        username="u1",
        password="pass12345",
        email="u1@example.com",
    )


def _habit(user, name):
    return Habit.objects.create(owner=user, name=name, start_date=date(2024, 1, 1))


def _bulk_create_logs(habit: Habit, dates):
    HabitLog.objects.bulk_create([HabitLog(habit=habit, date=d) for d in dates])


def test_recalculate_one__no_logs__persists_nothing(user):
    habit = _habit(user, "Empty")

    assert recalculation.recalculate_one(habit.pk) is None
    assert not Streak.objects.filter(habit=habit).exists()


def test_recalculate_one__creates_streak_row_from_full_history(user):
    habit = _habit(user, "Gym")
    _bulk_create_logs(habit, [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 10)])

    result = recalculation.recalculate_one(habit.pk)

    assert result == StreakResult(current=1, longest=3, last_date=date(2024, 1, 10))
    streak = Streak.objects.get(habit=habit)
    assert streak.current_streak == 1
    assert streak.longest_streak == 3
    assert streak.last_logged_date == date(2024, 1, 10)


def test_recalculate_one__is_idempotent(user):
    habit = _habit(user, "Read")
    _bulk_create_logs(habit, [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 5)])

    first = recalculation.recalculate_one(habit.pk)
    second = recalculation.recalculate_one(habit.pk)

    assert first == second
    assert Streak.objects.filter(habit=habit).count() == 1


def test_recalculate_one__longest_never_decreases_when_logs_disappear(user):
    habit = _habit(user, "Meditate")
    days = [date(2024, 1, 1) + timedelta(days=i) for i in range(5)]
    _bulk_create_logs(habit, days)
    assert recalculation.recalculate_one(habit.pk).longest == 5

    HabitLog.objects.filter(habit=habit, date=date(2024, 1, 3)).delete()
    result = recalculation.recalculate_one(habit.pk)

    assert result.current == 2
    assert result.longest == 5
    assert Streak.objects.get(habit=habit).longest_streak == 5


def test_recalculate_one__keeps_previously_stored_longest(user):
    habit = _habit(user, "Journal")
    Streak.objects.create(habit=habit, current_streak=0, longest_streak=12)
    _bulk_create_logs(habit, [date(2024, 2, 1), date(2024, 2, 2)])

    result = recalculation.recalculate_one(habit.pk)

    assert result.current == 2
    assert result.longest == 12


def test_recalculate_all__updates_every_habit_of_the_user_only(user, django_user_model):
    a = _habit(user, "A")
    b = _habit(user, "B")
    _bulk_create_logs(a, [date(2024, 1, 1), date(2024, 1, 2)])
    _bulk_create_logs(b, [date(2024, 1, 5)])

    other = django_user_model.objects.create_user(username="u2", password="pass12345")
    theirs = _habit(other, "Theirs")
    _bulk_create_logs(theirs, [date(2024, 1, 1)])

    failures = recalculation.recalculate_all(user)

    assert failures == []
    assert Streak.objects.get(habit=a).current_streak == 2
    assert Streak.objects.get(habit=b).current_streak == 1
    assert not Streak.objects.filter(habit=theirs).exists()


def test_recalculate_all__one_failing_habit_does_not_stop_the_batch(user, monkeypatch):
    good_1 = _habit(user, "Good 1")
    broken = _habit(user, "Broken")
    good_2 = _habit(user, "Good 2")
    for habit in (good_1, broken, good_2):
        _bulk_create_logs(habit, [date(2024, 1, 1), date(2024, 1, 2)])

    real_recalculate_one = recalculation.recalculate_one

    def flaky(habit_id):
        if habit_id == broken.pk:
            raise RuntimeError("store unavailable")
        return real_recalculate_one(habit_id)

    monkeypatch.setattr(recalculation, "recalculate_one", flaky)

    failures = recalculation.recalculate_all(user)

    assert [f.habit_id for f in failures] == [broken.pk]
    assert failures[0].message == "store unavailable"
    assert Streak.objects.get(habit=good_1).current_streak == 2
    assert Streak.objects.get(habit=good_2).current_streak == 2
    assert not Streak.objects.filter(habit=broken).exists()


def test_streak_row_is_deleted_with_its_habit(user):
    habit = _habit(user, "Temporary")
    _bulk_create_logs(habit, [date(2024, 1, 1)])
    recalculation.recalculate_one(habit.pk)

    habit.delete()

    assert Streak.objects.count() == 0


@pytest.mark.parametrize(
    "db_error, expected",
    [
        (IntegrityError("UNIQUE constraint failed: habits_streak.habit_id"), ConflictError),
        (DatabaseError("database is locked"), ComputationError),
    ],
)
def test_recalculate_one__maps_store_errors(user, monkeypatch, db_error, expected):
    habit = _habit(user, "Stretch")
    _bulk_create_logs(habit, [date(2024, 1, 1), date(2024, 1, 2)])

    def failing_upsert(habit_id, computed):
        raise db_error

    monkeypatch.setattr(recalculation, "_upsert_streak", failing_upsert)

    with pytest.raises(expected) as excinfo:
        recalculation.recalculate_one(habit.pk)

    assert excinfo.value.__cause__ is db_error
    assert not Streak.objects.filter(habit=habit).exists()


@pytest.mark.parametrize(
    "db_error, expected",
    [
        (IntegrityError("UNIQUE constraint failed: habits_streak.habit_id"), ConflictError),
        (DatabaseError("database is locked"), ComputationError),
    ],
)
def test_recalculate_all__reports_mapped_store_errors(user, monkeypatch, db_error, expected):
    fine = _habit(user, "Fine")
    broken = _habit(user, "Broken")
    for habit in (fine, broken):
        _bulk_create_logs(habit, [date(2024, 1, 1), date(2024, 1, 2)])

    real_upsert = recalculation._upsert_streak

    def flaky_upsert(habit_id, computed):
        if habit_id == broken.pk:
            raise db_error
        return real_upsert(habit_id, computed)

    monkeypatch.setattr(recalculation, "_upsert_streak", flaky_upsert)

    failures = recalculation.recalculate_all(user)

    assert [f.habit_id for f in failures] == [broken.pk]
    assert isinstance(failures[0].error, expected)
    assert str(broken.pk) in failures[0].message
    assert Streak.objects.get(habit=fine).current_streak == 2
    assert not Streak.objects.filter(habit=broken).exists()
