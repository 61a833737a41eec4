"""
WSGI config for the cvcoach project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "cvcoach.settings")

application = get_wsgi_application()
