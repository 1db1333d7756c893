from common.logging import app_context_processor, scrub_pii


def test_scrub_pii_redacts_sensitive_keys() -> None:
    """Test that credentials are redacted by key, at any depth."""
    event = scrub_pii(
        None,
        "info",
        {"event": "login", "password": "hunter2", "headers": {"Authorization": "Bearer abc", "Accept": "*/*"}},
    )

    assert event["password"] == "[REDACTED]"
    assert event["headers"] == {"Authorization": "[REDACTED]", "Accept": "*/*"}


def test_scrub_pii_keeps_token_references() -> None:
    """Test that keys which only point at a token survive."""
    event = scrub_pii(None, "info", {"event": "x", "token_last_four": "ab12", "api_token_id": "42"})

    assert event["token_last_four"] == "ab12"
    assert event["api_token_id"] == "42"


def test_scrub_pii_masks_free_text() -> None:
    """Test that addresses, phone numbers and events tokens are masked inside messages."""
    token = "gev_" + "a" * 64
    event = scrub_pii(None, "info", {"event": f"sent to ada@example.org and +8613800000001 using {token}"})

    assert event["event"] == "sent to [EMAIL] and [PHONE] using [TOKEN]"


def test_app_context_processor() -> None:
    """Test that events are stamped with the deployment without overwriting explicit values."""
    processor = app_context_processor(service="gatherly", version="1.0.0", environment="test")

    event = processor(None, "info", {"event": "x", "environment": "override"})

    assert event == {"event": "x", "service": "gatherly", "version": "1.0.0", "environment": "override"}
