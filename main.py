"""
Trip Dispatch Backend
=====================
Entry point. Run with ``python main.py`` or ``uvicorn main:app``.
Host, port and reload come from ``API_HOST`` / ``API_PORT`` / ``API_RELOAD``.
"""

import uvicorn

from trip_dispatch.api.app import create_app
from trip_dispatch.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
