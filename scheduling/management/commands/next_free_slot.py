"""
Management command to print the next free slot across calendars.

Useful to check availability from a shell or a cron job without going
through the API.
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from scheduling.availability import find_next_free_slot
from scheduling.exceptions import SlotValidationError


class Command(BaseCommand):
    help = 'Find the next free time slot of a given duration'

    def add_arguments(self, parser):
        parser.add_argument(
            '--duration',
            type=int,
            default=60,
            help='Slot duration in minutes (default: 60)'
        )
        parser.add_argument(
            '--calendar',
            type=int,
            action='append',
            dest='calendars',
            help='Calendar id to take into account (repeatable, default: all visible)'
        )

    def handle(self, *args, **options):
        duration = options['duration']

        self.stdout.write(
            f'Searching for a free {duration}-minute slot...'
        )

        try:
            slot = find_next_free_slot(duration, calendar_ids=options['calendars'])
        except SlotValidationError as exc:
            raise CommandError(str(exc))

        if slot is None:
            self.stdout.write(
                self.style.WARNING('No free slot found in the coming days')
            )
            return

        start = timezone.localtime(slot.start)
        end = timezone.localtime(slot.end)
        self.stdout.write(
            self.style.SUCCESS(
                f'Next free slot: {start:%Y-%m-%d %H:%M} - {end:%H:%M}'
            )
        )
