"""WSGI config for the Finishline project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "finishline.settings")

application = get_wsgi_application()
