"""
asgi.py -- ASGI entry point for AccountGuard.

api/main.py builds the whole application; this module only re-exports it so
the server command stays stable if the app grows more layers.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
