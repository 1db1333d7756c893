"""WSGI config for Gatherly."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "gatherly.settings")

application = get_wsgi_application()
