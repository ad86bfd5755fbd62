from django.apps import AppConfig


class QuestionnaireConfig(AppConfig):
    name = 'questionnaire'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from . import signals  # noqa: F401
