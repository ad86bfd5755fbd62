"""
Create a new questionnaire from an archive written by export_questionnaire.

    python manage.py import_questionnaire <file.zip | -> [--title "New title"]

Answers in the archive are never imported.
"""
import sys

from django.core.management.base import BaseCommand, CommandError

from questionnaire import serialization


class Command(BaseCommand):
    help = 'Import a questionnaire from a ZIP archive'

    def add_arguments(self, parser):
        parser.add_argument('archive', help='ZIP archive path, "-" for stdin')
        parser.add_argument('--title', default=None, help='Title of the imported questionnaire')

    def _import(self, archive, title):
        try:
            return serialization.import_questionnaire_from_zip(archive, title=title)
        except serialization.ImportError as e:
            raise CommandError(f"Import failed: {e}")

    def handle(self, *args, **options):
        path = options['archive']

        if path == '-':
            questionnaire, warnings = self._import(sys.stdin.buffer, options['title'])
        else:
            try:
                with open(path, 'rb') as archive:
                    questionnaire, warnings = self._import(archive, options['title'])
            except FileNotFoundError:
                raise CommandError(f"Archive '{path}' not found")

        for warning in warnings:
            self.stderr.write(self.style.WARNING(warning))
        self.stdout.write(self.style.SUCCESS(f"Imported '{questionnaire.title}' as {questionnaire.uuid}"))
