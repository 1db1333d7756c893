"""Structlog processors shared by the Django and Celery processes."""

import re
import typing as t

SENSITIVE_KEYS = ("password", "secret", "api_key", "token", "authorization", "cookie")
KEPT_KEY_SUFFIXES = ("_id", "_last_four", "_count")

EMAIL_PATTERN = re.compile(r"\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+\b")
PHONE_PATTERN = re.compile(r"\+\d{7,15}\b")
EVENTS_TOKEN_PATTERN = re.compile(r"\b[a-z]{2,8}_[0-9a-f]{64}\b")

EventDict = dict[str, t.Any]


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    if lowered.endswith(KEPT_KEY_SUFFIXES):
        return False
    return any(word in lowered for word in SENSITIVE_KEYS)


def redact_text(text: str) -> str:
    """Mask tokens, email addresses and phone numbers inside free text."""
    text = EVENTS_TOKEN_PATTERN.sub("[TOKEN]", text)
    text = EMAIL_PATTERN.sub("[EMAIL]", text)
    return PHONE_PATTERN.sub("[PHONE]", text)


def _redact(value: t.Any, key: str = "") -> t.Any:
    if key and _is_sensitive(key):
        return "[REDACTED]"
    if isinstance(value, dict):
        return {k: _redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, str):
        return redact_text(value)
    return value


def scrub_pii(logger: t.Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact credentials by key and personal data by pattern, recursing into dicts.

    Keys such as ``token_last_four`` or ``user_id`` only reference a secret and are kept.
    """
    return {key: _redact(value, key) for key, value in event_dict.items()}


def app_context_processor(service: str, version: str, environment: str) -> t.Callable[..., EventDict]:
    """Build a processor stamping every event with the deployment it came from."""

    def add_app_context(logger: t.Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", version)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_app_context
