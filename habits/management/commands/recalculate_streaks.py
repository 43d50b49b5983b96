from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from habits.services.recalculation import recalculate_all


class Command(BaseCommand):
    help = "Rebuild cached streaks from the completion logs for every user, or one user."

    def add_arguments(self, parser):
        parser.add_argument("--user", dest="username", help="Only recalculate this username.")

    def handle(self, *args, username=None, **options):
        users = get_user_model().objects.order_by("pk")
        if username:
            users = users.filter(username=username)
            if not users.exists():
                raise CommandError(f"No user named {username!r}")

        failed = 0
        for user in users:
            failures = recalculate_all(user)
            failed += len(failures)
            for failure in failures:
                self.stderr.write(f"  habit {failure.habit_id}: {failure.message}")
            self.stdout.write(f"Recalculated streaks for {user.get_username()} ({len(failures)} failed)")

        if failed:
            raise CommandError(f"{failed} habit(s) could not be recalculated")
        self.stdout.write(self.style.SUCCESS("All streaks recalculated"))
