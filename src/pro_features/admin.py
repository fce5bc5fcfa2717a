from django.contrib import admin

from pro_features.models import ProFeatureConfig


@admin.register(ProFeatureConfig)
class ProFeatureConfigAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    """Runtime switches for Pro features. Saving clears the cached config."""

    list_display = ["feature_key", "enabled", "visibility_override", "updated_at"]
    list_filter = ["enabled", "visibility_override"]
    search_fields = ["feature_key", "notes"]
