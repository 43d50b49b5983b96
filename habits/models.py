from __future__ import annotations
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models


class Category(models.Model):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='habit_categories',
    )
    name = models.CharField(max_length=120)
    color = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'categories'

    def __str__(self) -> str:
        return self.name


class Habit(models.Model):
    class Frequency(models.TextChoices):
        DAILY = 'daily', 'Daily'
        WEEKLY = 'weekly', 'Weekly'
        MONTHLY = 'monthly', 'Monthly'

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='habits',
    )
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='habits',
    )
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    frequency = models.CharField(max_length=10, choices=Frequency.choices, default=Frequency.DAILY)
    target_count = models.PositiveIntegerField(default=1)
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    reminder_time = models.TimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['owner', 'name'], name='unique_habit_name_per_user'),
            models.CheckConstraint(condition=models.Q(target_count__gte=1), name='habit_target_count_positive'),
        ]

    if TYPE_CHECKING:
        # Django dynamically injects these via related_name
        logs = None
        streak = None

    def __str__(self) -> str:
        return self.name


class HabitLog(models.Model):
    """One completion entry. Several entries may share a (habit, date)."""

    habit = models.ForeignKey(Habit, on_delete=models.CASCADE,
                              related_name="logs")
    date = models.DateField()
    completed_count = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(completed_count__gte=1), name="habit_log_count_positive")
        ]
        indexes = [
            models.Index(fields=["habit", "date"], name="habit_log_habit_date_idx"),
        ]
        ordering = ["-date", "-created_at"]

    def __str__(self) -> str:
        return f"{self.habit.name} @ {self.date} x{self.completed_count}"


class Streak(models.Model):
    """Cached streak counts, rebuilt from the full log history on recalculation."""

    habit = models.OneToOneField(Habit, on_delete=models.CASCADE,
                                 related_name="streak")
    current_streak = models.PositiveIntegerField(default=0)
    longest_streak = models.PositiveIntegerField(default=0)
    last_logged_date = models.DateField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.habit.name}: {self.current_streak} (longest {self.longest_streak})"
