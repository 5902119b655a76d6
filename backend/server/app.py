"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (OpenAI client for feedback analysis)
- Register routes
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import AppConfig

from observability.logger import log_event
from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    ``config`` defaults to the environment; tests pass their own.
    """
    config = config or AppConfig.load_from_env()

    logging.basicConfig(level=config.log_level.upper())

    app = FastAPI(title="Interview Voice API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One client per process; analysis is skipped without a key.
    app.state.openai_client = build_feedback_client(config)

    if not config.has_live_credentials:
        log_event({
            "event_type": "LIVE_CREDENTIALS_MISSING",
            "level": "warning",
            "env": config.env,
        })

    # Routes
    register_routes(app)

    return app


def build_feedback_client(config: AppConfig) -> AsyncOpenAI | None:
    """OpenAI client for transcript analysis, or None when not configured."""
    if not config.openai_api_key:
        return None
    return AsyncOpenAI(api_key=config.openai_api_key)
