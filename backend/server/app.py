"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (LLM client, judge, tutor, score book)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from config import AppConfig
from observability import logger
from observability.logger import log_event, now_ms
from services.judge_service import CodeJudge, TutorService
from services.score_service import ScoreBook

from server.routes import register_routes


_PROVIDER_BASE_URLS: dict[str, str] = {
    "groq": "https://api.groq.com/openai/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
}


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(level=config.log_level, json_lines=config.enable_json_logs)

    app = FastAPI(title="Interview Hall API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # LLM client is created ONCE per process. Without a key the grading
    # endpoints answer 503; the live interview does not depend on it.
    client = build_llm_client(config=config)
    if client is None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LLM_CLIENT_DISABLED",
            "level": "warning",
            "provider": config.llm_provider,
        })
        app.state.judge = None
        app.state.tutor = None
    else:
        app.state.judge = CodeJudge(client=client, model=config.llm_model)
        app.state.tutor = TutorService(client=client, model=config.llm_model)

    app.state.scorebook = ScoreBook(config.score_store_path)

    # None -> the Gemini Live channel built from config
    app.state.channel_factory = None

    # Routes
    register_routes(app)

    return app


def build_llm_client(config: AppConfig) -> AsyncOpenAI | None:
    """Build an LLM client with the provider selected by environment variables."""
    provider = config.llm_provider.lower()
    if provider == "groq":
        api_key = config.groq_api_key
    elif provider == "gemini":
        api_key = config.gemini_api_key
    else:
        api_key = config.openai_api_key

    if not api_key:
        return None

    base_url = _PROVIDER_BASE_URLS.get(provider)
    if base_url is None:
        return AsyncOpenAI(api_key=api_key)
    return AsyncOpenAI(api_key=api_key, base_url=base_url)
