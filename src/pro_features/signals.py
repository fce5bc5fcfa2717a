import typing as t

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from pro_features.models import ProFeatureConfig
from pro_features.service import invalidate_pro_feature_config_cache


@receiver([post_save, post_delete], sender=ProFeatureConfig)
def handle_pro_feature_config_change(sender: type[ProFeatureConfig], **kwargs: t.Any) -> None:
    """Drop the cached config snapshot whenever a row changes."""
    invalidate_pro_feature_config_cache()
