"""
Django management command to register the promotions Django-Q2 schedules
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from apps.promotions.tasks import expire_overdue_redemptions, setup_promotion_scheduled_tasks


class Command(BaseCommand):
    """Register promotions schedules, optionally running the expiry sweep now"""

    help = "Register the redemption expiry sweep with Django-Q2"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--run-now",
            action="store_true",
            help="Run the expiry sweep once in-process after registering",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        for task, state in setup_promotion_scheduled_tasks().items():
            self.stdout.write(f"{task}: {state}")

        if options["run_now"]:
            result = expire_overdue_redemptions()
            self.stdout.write(self.style.SUCCESS(f"Expired {result['expired_count']} redemption(s)"))
