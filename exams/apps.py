from django.apps import AppConfig


class ExamsConfig(AppConfig):
    name = 'exams'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from . import receivers  # noqa: F401
