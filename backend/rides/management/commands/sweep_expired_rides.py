from django.core.management.base import BaseCommand

from services.expiration import find_expired_ride_ids, sweep_expired_rides


class Command(BaseCommand):
    help = "Complete or delete rides whose time window has already passed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many rides would be retired without changing anything.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            expired = find_expired_ride_ids()
            self.stdout.write(
                self.style.WARNING(f"DRY RUN: {len(expired)} expired ride(s) would be retired.")
            )
            return

        result = sweep_expired_rides()

        message = (
            f"Completed {len(result.completed)} ride(s); "
            f"deleted {len(result.deleted)} empty ride(s)."
        )
        if result.failed:
            self.stdout.write(self.style.WARNING(f"{message} {len(result.failed)} ride(s) failed."))
        else:
            self.stdout.write(self.style.SUCCESS(message))
