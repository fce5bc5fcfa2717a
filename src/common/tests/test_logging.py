from finishline.settings.observability import add_app_context, scrub_pii


def test_scrub_pii_redacts_secrets_and_masks_free_text_emails() -> None:
    event = {
        "event": "invite_claimed",
        "invite_token": "abc",
        "promo_code": "SPRING-2026",
        "detail": "sent to ana@example.com",
        "email": "ana@example.com",
        "nested": {"Authorization": "Bearer x", "count": 2},
    }

    scrubbed = scrub_pii(None, "info", event)

    assert scrubbed["invite_token"] == "[REDACTED]"
    assert scrubbed["promo_code"] == "[REDACTED]"
    assert scrubbed["detail"] == "sent to [EMAIL]"
    assert scrubbed["email"] == "ana@example.com"
    assert scrubbed["nested"] == {"Authorization": "[REDACTED]", "count": 2}


def test_add_app_context() -> None:
    event = add_app_context(None, "info", {"event": "x"})

    assert event["service"] == "finishline"
    assert {"version", "environment"} <= event.keys()
