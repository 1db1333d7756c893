"""Tunables for ordering, check-in and communications."""

from decouple import Csv, config

# Orders
ORDER_EXPIRE_MINUTES = config("ORDER_EXPIRE_MINUTES", default=30, cast=int)
ORDER_SWEEP_BATCH_SIZE = config("ORDER_SWEEP_BATCH_SIZE", default=100, cast=int)
DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", default="CNY")

# Check-in
CHECKIN_OPENS_BEFORE_MINUTES = config("CHECKIN_OPENS_BEFORE_MINUTES", default=120, cast=int)
CHECKIN_CONTRIBUTION_POINTS = config("CHECKIN_CONTRIBUTION_POINTS", default=5, cast=int)

# Communications
COMMUNICATION_LIMIT_PER_EVENT = config("COMMUNICATION_LIMIT_PER_EVENT", default=8, cast=int)
COMMUNICATION_MAX_RETRIES = config("COMMUNICATION_MAX_RETRIES", default=3, cast=int)
VIRTUAL_EMAIL_DOMAINS = config("VIRTUAL_EMAIL_DOMAINS", default="wechat.app", cast=Csv())
