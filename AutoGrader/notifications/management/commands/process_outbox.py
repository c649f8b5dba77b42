from django.conf import settings
from django.core.management.base import BaseCommand

from notifications.outbox import process_outbox_batch


class Command(BaseCommand):
    help = "Claim and send due grade-report emails from the outbox."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Max jobs to process (1-100).")

    def handle(self, *args, **options):
        summary = process_outbox_batch(options["limit"] or settings.OUTBOX_BATCH_LIMIT)
        self.stdout.write(self.style.SUCCESS(
            f"claimed={summary.claimed} sent={summary.sent} retried={summary.retried} canceled={summary.canceled}"
        ))
