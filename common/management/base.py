"""
Shared base command class for Linkdrop management commands.

Provides the --dry-run / --json flags and a single report() helper so
maintenance commands (e.g. sweep_upload_sessions) can be run by an
external scheduler and parsed by machines.
"""

import json
import time

from django.core.management.base import BaseCommand


class LinkdropBaseCommand(BaseCommand):
    """
    Base command for scheduled maintenance commands.

    Subclasses can set class attributes to opt-in to common arguments:
        supports_dry_run = True: adds --dry-run flag
        supports_json = True:    adds --json flag
    """

    supports_dry_run = False
    supports_json = False

    def add_arguments(self, parser):
        if self.supports_dry_run:
            parser.add_argument(
                "--dry-run",
                action="store_true",
                help="Report what would be removed without changing anything",
            )
        if self.supports_json:
            parser.add_argument(
                "--json",
                action="store_true",
                dest="json_output",
                help="Output the result dict as JSON",
            )

    def start_timer(self):
        self._start_time = time.monotonic()

    def elapsed(self):
        """Seconds since start_timer(), or 0.0 if it was never called."""
        start = getattr(self, "_start_time", None)
        return 0.0 if start is None else time.monotonic() - start

    def report(self, result, options, summary):
        """Write ``result`` as JSON, or ``summary`` as a success line.

        Args:
            result: Result dict returned by the service call.
            options: The command's parsed options.
            summary: Human-readable one-line summary.
        """
        if options.get("json_output"):
            payload = dict(result, elapsed_seconds=round(self.elapsed(), 3))
            self.stdout.write(json.dumps(payload, indent=2, default=str))
            return
        self.stdout.write(self.style.SUCCESS(f"{summary} ({self.elapsed():.2f}s)"))
