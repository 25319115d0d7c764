from django.apps import AppConfig


class CatiCoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fieldwork.apps.cati_core'
    label = 'cati_core'
    verbose_name = 'CATI'

    def ready(self) -> None:  # pragma: no cover - import side effects
        from . import signals  # noqa: F401
        return super().ready()
