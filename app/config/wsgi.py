"""
WSGI config for the Django application.

Serves the REST API only; WebSocket chat requires the ASGI entry point
(config/asgi.py). Useful for running the admin or the API behind a plain
WSGI server such as gunicorn.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
