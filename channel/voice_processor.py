"""
Voice message processor.

Integrates Whisper transcription with the inbound message pipeline.
"""

import logging
from typing import Callable, Optional

from config.settings import get_settings
from services.telegram_audio import TelegramAudioDownloader
from services.transcription import TranscriptionService

logger = logging.getLogger(__name__)


class VoiceProcessor:
    """
    Turns a voice file id into text.

    Downloads voice files from Telegram and transcribes them with Whisper.
    """

    def __init__(
        self,
        get_bot: Optional[Callable] = None,
        transcription_service: Optional[TranscriptionService] = None,
    ):
        """
        Args:
            get_bot: Function that returns the Telegram bot instance
            transcription_service: Pre-built service, mostly for tests
        """
        self.audio_downloader: Optional[TelegramAudioDownloader] = None
        self.transcription_service = transcription_service
        self._get_bot = get_bot

    def initialize(self) -> None:
        """Build the transcription service; the Whisper model itself loads lazily."""
        if self.transcription_service is not None:
            return

        settings = get_settings()
        logger.info(f"Initializing TranscriptionService (model: {settings.whisper_model})")
        self.transcription_service = TranscriptionService(
            model=settings.whisper_model, device=settings.whisper_device
        )

    def _downloader(self) -> TelegramAudioDownloader:
        if self.audio_downloader is None:
            bot = self._get_bot() if self._get_bot else None
            if bot is None:
                raise RuntimeError("Audio downloader not initialized")
            self.audio_downloader = TelegramAudioDownloader(bot=bot)
        return self.audio_downloader

    async def transcribe(self, file_id: str) -> str:
        """
        Download and transcribe one voice message.

        Raises:
            RuntimeError: if download or transcription fails or yields no text
        """
        logger.info(f"Processing voice message: file_id={file_id}")
        self.initialize()
        settings = get_settings()

        try:
            transcription = await self._downloader().download_and_transcribe(
                file_id=file_id,
                transcription_service=self.transcription_service,
                output_dir=settings.audio_download_dir,
                language=settings.whisper_language,
            )
        except Exception as e:
            logger.error(f"Voice transcription failed: {e}", exc_info=True)
            raise RuntimeError(f"Failed to transcribe voice message: {e}") from e

        if not transcription or len(transcription.strip()) < 2:
            raise RuntimeError("Transcription is too short or empty")

        preview = transcription[:100] + "..." if len(transcription) > 100 else transcription
        logger.info(f"Voice transcription successful: {len(transcription)} chars - {preview}")
        return transcription.strip()

    async def cleanup(self) -> None:
        """Release the Whisper model."""
        if self.transcription_service is not None:
            await self.transcription_service.cleanup()
        logger.info("VoiceProcessor cleanup completed")
