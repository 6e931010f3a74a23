"""
asgi.py -- ASGI entry point for TourMarket.

api/main.py assembles the app; this module only exposes it under the name
uvicorn expects.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
