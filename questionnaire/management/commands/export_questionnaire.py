"""
Write a questionnaire's structure and/or answers to a ZIP archive.

    python manage.py export_questionnaire <id-or-uuid> [--mode=structure|data|full] [-o file.zip]

Without --output the archive goes to stdout.
"""
import sys
import uuid

from django.core.management.base import BaseCommand, CommandError

from questionnaire.models import Questionnaire
from questionnaire.serialization import EXPORT_MODES, ExportError, export_questionnaire_to_zip


def find_questionnaire(identifier):
    try:
        lookup = {'uuid': uuid.UUID(identifier)}
    except ValueError:
        if not identifier.isdigit():
            raise CommandError(f"Questionnaire '{identifier}' not found")
        lookup = {'pk': int(identifier)}

    questionnaire = Questionnaire.objects.filter(**lookup).first()
    if questionnaire is None:
        raise CommandError(f"Questionnaire '{identifier}' not found")
    return questionnaire


class Command(BaseCommand):
    help = 'Export a questionnaire to a ZIP archive'

    def add_arguments(self, parser):
        parser.add_argument('identifier', help='Questionnaire id or uuid')
        parser.add_argument('--mode', choices=EXPORT_MODES, default='structure',
                            help='structure: questions only, data: answers.csv only, full: both')
        parser.add_argument('--output', '-o', default=None, help='Archive path (default: stdout)')

    def handle(self, *args, **options):
        questionnaire = find_questionnaire(options['identifier'])
        output_path = options['output']

        try:
            if output_path is None:
                warnings = export_questionnaire_to_zip(questionnaire, sys.stdout.buffer, options['mode'])
            else:
                with open(output_path, 'wb') as archive:
                    warnings = export_questionnaire_to_zip(questionnaire, archive, options['mode'])
        except (ExportError, OSError) as e:
            raise CommandError(f"Export failed: {e}")

        for warning in warnings:
            self.stderr.write(self.style.WARNING(warning))
        if output_path is not None:
            self.stdout.write(self.style.SUCCESS(f"Exported '{questionnaire.title}' to {output_path}"))
