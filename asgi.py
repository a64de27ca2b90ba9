"""
asgi.py -- Application assembly for FieldPass.

This is the module ASGI servers import. The REST API is the only surface;
UI rendering belongs to whatever front end consumes it. The client/ package
and main.py talk to this app over HTTP and are never imported here.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
