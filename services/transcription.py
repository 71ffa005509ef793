"""
Transcription service using Faster Whisper.

Runs the blocking model in a thread pool, one transcription at a time.
"""

import os
from typing import Optional
import asyncio
import logging
from faster_whisper import WhisperModel

logger = logging.getLogger(__name__)


class TranscriptionService:
    """
    Service for transcribing audio files using Faster Whisper.

    Uses CTranslate2-based implementation for faster inference
    and lower memory usage.
    """

    def __init__(self, model: str = "base", device: str = "auto"):
        """
        Args:
            model: Whisper model size (tiny, base, small, medium, large-v3)
            device: Device to use (auto, cpu, cuda); "auto" is resolved by CTranslate2
        """
        self.model_name = model
        self.device = device
        # "default" lets CTranslate2 pick float16 on GPU and int8 on CPU for "auto"
        if device == "cuda":
            self.compute_type = "float16"
        elif device == "cpu":
            self.compute_type = "int8"
        else:
            self.compute_type = "default"
        self._model = None
        self._lock = asyncio.Lock()

        logger.info(
            f"TranscriptionService initialized (model: {model}, device: {self.device}, compute: {self.compute_type})"
        )

    @property
    def model(self) -> WhisperModel:
        """Lazy load the Faster Whisper model"""
        if self._model is None:
            logger.info(f"Loading Faster Whisper model '{self.model_name}' on {self.device}...")
            try:
                self._model = WhisperModel(
                    self.model_name, device=self.device, compute_type=self.compute_type
                )
                logger.info("Faster Whisper model loaded successfully")
            except Exception as e:
                logger.error(f"Failed to load Faster Whisper model: {e}")
                raise
        return self._model

    async def transcribe(
        self,
        audio_path: str,
        language: str = "auto",
        initial_prompt: Optional[str] = None,
    ) -> str:
        """
        Transcribe audio file to text using Faster Whisper.

        Args:
            audio_path: Path to audio file
            language: Language code (auto, es, en, etc.)
            initial_prompt: Optional prompt to guide transcription

        Returns:
            Transcribed text
        """
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        logger.info(f"Transcribing audio: {audio_path} (language: {language})")

        def _transcribe() -> str:
            segments, info = self.model.transcribe(
                audio_path,
                language=None if language == "auto" else language,
                initial_prompt=initial_prompt,
                beam_size=5,
            )
            # Segments is a generator, must iterate to process
            full_text = " ".join(segment.text for segment in segments).strip()
            logger.info(
                f"Transcription completed: {len(full_text)} chars (detected language: {info.language})"
            )
            return full_text

        loop = asyncio.get_running_loop()
        async with self._lock:
            return await loop.run_in_executor(None, _transcribe)

    async def cleanup(self) -> None:
        """Cleanup model resources"""
        if self._model is not None:
            logger.info("Cleaning up Whisper model")
            self._model = None
