"""Remove abandoned chunked upload sessions and stale progress records."""

from common.management.base import LinkdropBaseCommand
from uploads.services.uploads import (
    SWEEP_BATCH_SIZE,
    purge_expired_progress,
    sweep_expired_sessions,
)


class Command(LinkdropBaseCommand):
    help = "Delete upload sessions idle longer than UPLOAD_SESSION_TTL_HOURS."

    supports_dry_run = True
    supports_json = True

    def add_arguments(self, parser):
        super().add_arguments(parser)
        parser.add_argument(
            "--ttl-hours",
            type=int,
            default=None,
            help="Inactivity window in hours (default: UPLOAD_SESSION_TTL_HOURS)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=SWEEP_BATCH_SIZE,
            help=f"Maximum sessions removed per run (default: {SWEEP_BATCH_SIZE})",
        )

    def handle(self, *args, **options):
        self.start_timer()
        dry_run = options["dry_run"]

        result = sweep_expired_sessions(
            ttl_hours=options["ttl_hours"],
            batch_size=options["batch_size"],
            dry_run=dry_run,
        )
        result["progress_deleted"] = 0 if dry_run else purge_expired_progress()
        result["dry_run"] = dry_run

        if dry_run:
            summary = f"{result['remaining']} expired upload sessions would be removed."
        else:
            summary = (
                f"Removed {result['deleted']} expired upload sessions "
                f"({result['remaining']} remaining, "
                f"{result['progress_deleted']} progress records purged)."
            )
        self.report(result, options, summary)
