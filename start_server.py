#!/usr/bin/env python3
"""Start the operator API server."""

import os

import uvicorn

from chat_fallback.config.settings import get_settings
from chat_fallback.observability.logging import configure_from_settings


def main():
    """Start the FastAPI server."""
    # Get configuration from environment
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    settings = get_settings()
    configure_from_settings(settings.logging)

    print("🚀 Starting chat-fallback operator API...")
    print(f"🔍 Host: {host}")
    print(f"🔍 Port: {port}")
    print(f"🔍 Environment: {settings.environment.value}")

    # Start the server
    uvicorn.run(
        "chat_fallback.api.operator:create_app",
        factory=True,
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
