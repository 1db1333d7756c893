"""Outbound email and SMS.

With ``OUTBOUND_DRY_RUN`` (or ``DEBUG``) both channels print to the console
instead of talking to SMTP or the SMS gateway.
"""

from decouple import config

from .base import DEBUG

OUTBOUND_DRY_RUN = config("OUTBOUND_DRY_RUN", default=DEBUG, cast=bool)

DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="Gatherly <events@example.com>")
INTERNAL_CATCHALL_EMAIL = config("INTERNAL_CATCHALL_EMAIL", default="internal@example.com")
EMAIL_BACKEND = (
    "django.core.mail.backends.console.EmailBackend"
    if OUTBOUND_DRY_RUN
    else "django.core.mail.backends.smtp.EmailBackend"
)
EMAIL_HOST = config("EMAIL_HOST", default="localhost")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD", default="")
EMAIL_USE_TLS = config("EMAIL_USE_TLS", default=True, cast=bool)
EMAIL_TIMEOUT = config("EMAIL_TIMEOUT", default=10, cast=int)

SMS_BACKEND = config(
    "SMS_BACKEND",
    default="communications.sms.ConsoleSmsBackend" if OUTBOUND_DRY_RUN else "communications.sms.HttpSmsBackend",
)
SMS_GATEWAY_URL = config("SMS_GATEWAY_URL", default="http://localhost:9090/sms")
SMS_GATEWAY_API_KEY = config("SMS_GATEWAY_API_KEY", default="")
SMS_GATEWAY_TIMEOUT = config("SMS_GATEWAY_TIMEOUT", default=10, cast=int)
