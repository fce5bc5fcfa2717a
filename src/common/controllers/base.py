import typing as t

from django.contrib.auth.models import AnonymousUser
from ninja_extra import ControllerBase

from accounts.models import FinishlineUser


class UserAwareController(ControllerBase):
    def maybe_user(self) -> FinishlineUser | AnonymousUser:
        """Get the user for this request."""
        return t.cast(FinishlineUser | AnonymousUser, self.context.request.user)  # type: ignore[union-attr]

    def user(self) -> FinishlineUser:
        """Get the user for this request."""
        return t.cast(FinishlineUser, self.context.request.user)  # type: ignore[union-attr]
