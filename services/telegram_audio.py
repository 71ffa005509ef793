"""
Telegram audio downloader service.

Downloads voice messages from Telegram and converts them to MP3
for Whisper compatibility.
"""

import os
import tempfile
import logging
from pathlib import Path
from typing import Optional

from pydub import AudioSegment
from telegram import Bot, File

from config.settings import get_settings

logger = logging.getLogger(__name__)


class TelegramAudioDownloader:
    """
    Service for downloading audio files from Telegram.

    Telegram delivers voice notes as OGG/Opus; they are re-encoded to MP3
    before transcription.
    """

    def __init__(self, bot: Bot):
        self.bot = bot
        logger.info("TelegramAudioDownloader initialized")

    async def download_voice(
        self,
        file_id: str,
        output_dir: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """
        Download a voice message from Telegram.

        Args:
            file_id: Telegram file_id from voice message
            output_dir: Directory to save the file (default: settings.audio_download_dir)
            filename: Optional custom filename

        Returns:
            Path to the converted MP3 file
        """
        output_dir = output_dir or get_settings().audio_download_dir
        os.makedirs(output_dir, exist_ok=True)

        if filename is None:
            filename = f"{file_id}.ogg"

        output_path = Path(output_dir) / filename
        logger.info(f"Downloading voice message: {file_id}")

        file: File = await self.bot.get_file(file_id)

        with tempfile.NamedTemporaryFile(suffix=".ogg", delete=False) as temp_file:
            temp_path = temp_file.name

        try:
            await file.download_to_drive(temp_path)
            logger.debug(f"Downloaded to temp file: {temp_path}")

            audio = AudioSegment.from_ogg(temp_path)
            mp3_path = output_path.with_suffix(".mp3")
            audio.export(mp3_path, format="mp3")
            logger.info(f"Converted to MP3: {mp3_path}")

            return str(mp3_path)
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
                logger.debug(f"Cleaned up temp file: {temp_path}")

    async def download_and_transcribe(
        self,
        file_id: str,
        transcription_service,
        output_dir: Optional[str] = None,
        language: str = "auto",
    ) -> str:
        """
        Download voice and transcribe in one step.

        The downloaded file is removed afterwards when ``cleanup_audio_files``
        is set, and always removed when transcription fails.
        """
        audio_path = await self.download_voice(file_id, output_dir)

        try:
            text = await transcription_service.transcribe(audio_path, language=language)
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            if os.path.exists(audio_path):
                os.unlink(audio_path)
            raise

        logger.info(f"Transcription completed: {len(text)} chars")
        if get_settings().cleanup_audio_files and os.path.exists(audio_path):
            os.unlink(audio_path)
            logger.debug(f"Cleaned up audio file: {audio_path}")

        return text
