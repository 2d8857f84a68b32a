"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.handlers import (
    create_analyze_handler,
    create_clear_session_handler,
    create_health_handler,
)
from src.config import Config
from src.services.conversation_store import SessionStore
from src.services.log_analyzer import LogAnalyzer
from src.services.qwen_client import QwenClient

logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def create_app(
    config: Config,
    store: SessionStore | None = None,
    client: QwenClient | None = None,
) -> FastAPI:
    """Build the application around one session store and completion client."""
    if store is None:
        store = SessionStore()
    if client is None:
        client = QwenClient(config)
    analyzer = LogAnalyzer(config, store, client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown."""
        # Startup
        store.start()
        print("🚀 Starting Log Analysis Helper...", flush=True)
        print(f"🤖 Model: {config.model}, retries: {config.retry_count}", flush=True)
        yield
        # Shutdown
        await store.shutdown()
        await client.aclose()
        print("👋 Shutting down Log Analysis Helper...", flush=True)

    app = FastAPI(
        title="Log Analysis Helper",
        description="Multi-round Java exception log analysis backed by Qwen",
        lifespan=lifespan,
    )

    # CORS middleware for UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    app.get("/health")(create_health_handler(store))
    app.post("/api/log/analyze")(create_analyze_handler(analyzer))
    app.post("/api/log/session/clear")(create_clear_session_handler(store))

    app.state.store = store
    app.state.analyzer = analyzer
    return app


def main():
    """Run the FastAPI server."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Refuses to start without QWEN_API_KEY
    config = Config.from_env()
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
