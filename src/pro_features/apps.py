from django.apps import AppConfig


class ProFeaturesConfig(AppConfig):
    """Configuration for the pro_features app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "pro_features"
    verbose_name = "Pro features"

    def ready(self) -> None:
        """Connect config cache invalidation."""
        from pro_features import signals  # noqa: F401
