"""WSGI config for streamline project."""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'streamline.settings')

application = get_wsgi_application()
