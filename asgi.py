"""
asgi.py -- ASGI entry point for the admin auth service.

Run with:  uvicorn asgi:app --reload

The application object is assembled in api/main.py; this module exists so
process managers have one stable import path that does not change if the API
package is reorganized.
"""

from api.main import app

__all__ = ["app"]
