# ~/backend/backend/core/wsgi.py
"""
WSGI config for the disputes backend.

Exposes the Django admin for support staff; the dispute engine itself is
driven by services and Celery tasks, not by HTTP views.
"""

import os
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

from django.core.wsgi import get_wsgi_application  # noqa: E402

application = get_wsgi_application()
