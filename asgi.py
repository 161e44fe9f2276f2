"""
asgi.py -- Application assembly for the JobHub edge server.

This is the only file that imports from both api/ and web/. api/main.py knows
nothing about web/; web/routes.py knows nothing about api/main.py.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
