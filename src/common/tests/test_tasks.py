import typing as t

import pytest
from django.core.mail import EmailMultiAlternatives

from common.models import EmailLog
from common.tasks import queue_email_on_commit, send_email

pytestmark = pytest.mark.django_db


def test_send_email_uses_bcc_and_logs(mailoutbox: list[EmailMultiAlternatives]) -> None:
    send_email(to=["a@example.com", "b@example.com"], subject="Hello", body="Plain", html_body="<p>Rich</p>")

    assert len(mailoutbox) == 1
    assert mailoutbox[0].bcc == ["a@example.com", "b@example.com"]
    assert mailoutbox[0].to == []
    logs = EmailLog.objects.order_by("to")
    assert [log.to for log in logs] == ["a@example.com", "b@example.com"]
    assert logs[0].body == "Plain"
    assert logs[0].html == "<p>Rich</p>"


def test_queue_email_waits_for_commit(
    django_capture_on_commit_callbacks: t.Any, mailoutbox: list[EmailMultiAlternatives]
) -> None:
    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        queue_email_on_commit(to="a@example.com", subject="Later", body="Body")

    assert mailoutbox == []
    assert len(callbacks) == 1
    callbacks[0]()
    assert mailoutbox[0].subject == "Later"


def test_enqueue_failure_is_logged_not_raised(
    django_capture_on_commit_callbacks: t.Any, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken_delay(**kwargs: t.Any) -> None:
        raise ConnectionError("broker down")

    monkeypatch.setattr(send_email, "delay", _broken_delay)

    with django_capture_on_commit_callbacks(execute=True):
        queue_email_on_commit(to="a@example.com", subject="Lost", body="Body")

    assert not EmailLog.objects.exists()
