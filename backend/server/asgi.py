"""
ASGI entry point.

Used by uvicorn:

    uvicorn server.asgi:app --app-dir backend

Reads .env before the config is loaded.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()
