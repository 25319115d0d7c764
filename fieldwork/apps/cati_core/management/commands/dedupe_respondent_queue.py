from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from fieldwork.apps.cati_core.models import CatiSurvey, mask_phone_number
from fieldwork.apps.cati_core.queueing import find_duplicate_entries, remove_duplicate_entries


class Command(BaseCommand):
    help = 'Report duplicate respondent phones in a survey queue, optionally soft-deleting pending repeats.'

    def add_arguments(self, parser):
        parser.add_argument('survey_id', type=int)
        parser.add_argument(
            '--apply',
            action='store_true',
            help='Soft-delete later pending duplicates instead of only reporting them.',
        )

    def handle(self, *args, **options):
        try:
            survey = CatiSurvey.objects.get(pk=options['survey_id'])
        except CatiSurvey.DoesNotExist as exc:
            raise CommandError(f"Survey {options['survey_id']} does not exist.") from exc

        groups = find_duplicate_entries(survey)
        if not groups:
            self.stdout.write(self.style.SUCCESS(f'No duplicate phones in survey {survey.pk}.'))
            return

        for group in groups:
            statuses = ', '.join(entry.status for entry in group.duplicates)
            self.stdout.write(
                f'{mask_phone_number(group.normalized_phone)}: keeping entry {group.kept.pk}, '
                f'{len(group.duplicates)} duplicate(s) [{statuses}]'
            )

        if not options['apply']:
            self.stdout.write('Dry run; pass --apply to soft-delete pending duplicates.')
            return

        removed = remove_duplicate_entries(survey)
        self.stdout.write(self.style.SUCCESS(f'Soft-deleted {removed} duplicate entries.'))
