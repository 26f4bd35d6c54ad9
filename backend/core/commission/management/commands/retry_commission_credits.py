from django.core.management.base import BaseCommand

from commission.engine import CommissionEngine


class Command(BaseCommand):
    help = "Re-attempt FAILED commission credits whose backoff has elapsed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of credits to retry in this run.",
        )

    def handle(self, *args, **options):
        result = CommissionEngine().retry_failed_credits(limit=options.get("limit") or 100)
        self.stdout.write(
            self.style.SUCCESS(
                f"scanned={result['scanned']} credited={result['credited']} failed={result['failed']}"
            )
        )
