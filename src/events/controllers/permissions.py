import typing as t

from django.http import HttpRequest
from ninja_extra import ControllerBase
from ninja_extra.permissions import BasePermission

from events import models


def _organization_of(obj: t.Any) -> models.Organization | None:
    if isinstance(obj, models.Organization):
        return obj
    if isinstance(obj, models.EventSeries):
        return obj.organization
    if isinstance(obj, (models.EventEdition, models.Registration, models.GroupRegistrationBatch)):
        edition = obj if isinstance(obj, models.EventEdition) else obj.edition
        return edition.organization
    return None


class OrganizerPermission(BasePermission):
    """Owner or staff of the organization that runs the object's event."""

    def has_permission(self, request: HttpRequest, controller: ControllerBase) -> bool:
        """Must implement abstract method. This is due to an error in Ninja Extra.

        This Method will be ignored, only has_object_permission will be called.
        """
        return True

    def has_object_permission(self, request: HttpRequest, controller: ControllerBase, obj: t.Any) -> bool:
        """Resolve the organization behind ``obj`` and check the requesting user manages it."""
        if getattr(request.user, "is_superuser", False):
            return True
        organization = _organization_of(obj)
        if organization is None:
            return False
        return organization.is_owner_or_staff(request.user.id)
