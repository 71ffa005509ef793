"""FastAPI application factory and configuration."""

import os

# Opt-in to future behavior for python-telegram-bot
os.environ["PTB_TIMEDELTA"] = "1"

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import get_settings

# Configure logging (atomic - only on true fresh start)
LOG_FILE = "server.log"

# Check if logging is already configured (e.g., hot reload)
# If handlers exist, skip setup to avoid clearing logs mid-session
if not logging.root.handlers:
    open(LOG_FILE, "w", encoding="utf-8").close()
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.FileHandler(LOG_FILE, encoding="utf-8", mode="a")],
    )

logger = logging.getLogger(__name__)

# Suppress noisy library logs
logging.getLogger("uvicorn").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting Telegram reply relay...")

    messaging_platform = None
    agent = None
    voice_processor = None
    inbound_handler = None

    try:
        if settings.telegram_bot_token:
            from agent.nim import NimReplyAgent
            from channel.handler import InboundHandler
            from channel.rate_limited_platform import RateLimitedPlatform
            from channel.telegram import TelegramPlatform
            from channel.voice_processor import VoiceProcessor
            from delivery.dispatcher import DeliveryOptions, ReplyDispatcher
            from delivery.history import PendingHistoryBuffer

            telegram = TelegramPlatform(
                bot_token=settings.telegram_bot_token,
                concurrent_updates=settings.telegram_concurrent_updates,
            )
            messaging_platform = RateLimitedPlatform(
                telegram,
                rate_limit=settings.messaging_rate_limit,
                rate_window=settings.messaging_rate_window,
            )

            agent = NimReplyAgent(settings)
            dispatcher = ReplyDispatcher(
                platform=messaging_platform,
                agent=agent,
                history=PendingHistoryBuffer(max_keys=settings.history_max_keys),
                options=DeliveryOptions.from_settings(settings),
            )

            voice_processor = VoiceProcessor(get_bot=lambda: telegram.bot)
            try:
                voice_processor.initialize()
            except Exception as e:
                # Voice is optional; text messages still work
                logger.error(f"Failed to initialize voice processor: {e}", exc_info=True)
                voice_processor = None

            inbound_handler = InboundHandler(
                dispatcher, voice_processor=voice_processor, settings=settings
            )
            messaging_platform.on_message(inbound_handler.handle_message)

            await messaging_platform.start()
            logger.info("Telegram platform started with message handler")
        else:
            logger.warning("TELEGRAM_BOT_TOKEN not set, messaging disabled")

    except Exception as e:
        logger.error(f"Failed to start messaging platform: {e}", exc_info=True)

    # Store in app state for access in routes
    app.state.messaging_platform = messaging_platform
    app.state.inbound_handler = inbound_handler

    yield

    # Cleanup
    if messaging_platform:
        await messaging_platform.stop()
    if voice_processor:
        await voice_processor.cleanup()
    if agent:
        await agent.aclose()
    logger.info("Server shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Telegram Reply Relay",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health(request: Request):
        platform = getattr(request.app.state, "messaging_platform", None)
        return {
            "status": "healthy",
            "messaging": bool(platform and platform.is_connected),
        }

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        logger.error(f"General Error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "type": "error",
                "error": {
                    "type": "api_error",
                    "message": "An unexpected error occurred.",
                },
            },
        )

    return app


# Default app instance for uvicorn
app = create_app()
