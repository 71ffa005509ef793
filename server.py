"""
Telegram Reply Relay

Runs the FastAPI app whose lifespan connects the Telegram bot, the reply
dispatcher and the NVIDIA NIM agent.
"""

import uvicorn

from api.app import app
from config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
