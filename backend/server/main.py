"""
Local development entry point.

    cd backend && python -m server.main

Production runs ``uvicorn server.asgi:app`` directly.
"""

from __future__ import annotations

import os

import uvicorn
from dotenv import load_dotenv


def main() -> None:
    load_dotenv()
    uvicorn.run(
        "server.asgi:app",
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        reload=os.environ.get("ENV", "dev") == "dev",
    )


if __name__ == "__main__":
    main()
