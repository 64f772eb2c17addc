from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = "project.core"
    verbose_name = "Chain index"
    default_auto_field = "django.db.models.BigAutoField"
