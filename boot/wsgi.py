"""
WSGI config for Linkdrop.

Exposes the WSGI callable as a module-level variable named ``application``.
Chunk and reassembly requests are long-running uploads; run the WSGI
server with a request timeout above UPLOAD_FINALIZE_TIMEOUT_SECONDS.
"""

import os

from dotenv import load_dotenv

load_dotenv()

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "boot.settings")
os.environ.setdefault("DJANGO_CONFIGURATION", "Production")

from configurations.wsgi import get_wsgi_application

application = get_wsgi_application()
