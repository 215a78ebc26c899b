from django.apps import AppConfig


class LateAccessConfig(AppConfig):
    name = 'late_access'
    verbose_name = 'Late access codes'
    default_auto_field = 'django.db.models.BigAutoField'
