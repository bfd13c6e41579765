from django.core.management.base import BaseCommand

from test_requests.workflows.completion import complete_delivered_requests


class Command(BaseCommand):
    help = "Close test requests whose report was delivered before the grace period"

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None)

    def handle(self, *args, **options):
        count = complete_delivered_requests(limit=options["limit"])
        self.stdout.write(self.style.SUCCESS(f"Completed {count} test request(s)."))
