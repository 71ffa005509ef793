"""Tests for TelegramAudioDownloader."""

import pytest
from unittest.mock import Mock, AsyncMock, patch, MagicMock
from services.telegram_audio import TelegramAudioDownloader


@pytest.fixture
def mock_bot():
    """Mock Telegram Bot"""
    bot = Mock()
    bot.get_file = AsyncMock()
    mock_file = Mock()
    mock_file.file_path = "voice/file_123.ogg"
    mock_file.download_to_drive = AsyncMock()
    bot.get_file.return_value = mock_file
    return bot


@pytest.fixture
def downloader(mock_bot):
    """Create TelegramAudioDownloader instance"""
    return TelegramAudioDownloader(bot=mock_bot)


@pytest.fixture
def mock_audio():
    audio = MagicMock()
    with patch("services.telegram_audio.AudioSegment.from_ogg", return_value=audio):
        yield audio


@pytest.mark.asyncio
async def test_download_voice_message(downloader, mock_bot, mock_audio, tmp_path):
    """Voice notes are downloaded and re-encoded to MP3"""
    result = await downloader.download_voice(
        file_id="file_unique_id_123", output_dir=str(tmp_path)
    )

    assert result == str(tmp_path / "file_unique_id_123.mp3")
    mock_bot.get_file.assert_called_once_with("file_unique_id_123")
    mock_bot.get_file.return_value.download_to_drive.assert_awaited_once()
    mock_audio.export.assert_called_once()
    assert mock_audio.export.call_args.kwargs == {"format": "mp3"}


@pytest.mark.asyncio
async def test_download_voice_removes_temp_file(downloader, mock_audio, tmp_path):
    with patch("services.telegram_audio.os.unlink") as mock_unlink:
        await downloader.download_voice(file_id="f1", output_dir=str(tmp_path))

    unlinked = mock_unlink.call_args.args[0]
    assert unlinked.endswith(".ogg")


@pytest.mark.asyncio
async def test_download_and_transcribe(downloader, mock_audio, tmp_path):
    """Download and transcription in one step"""
    mock_transcription_service = Mock()
    mock_transcription_service.transcribe = AsyncMock(return_value="Texto transcrito")

    result = await downloader.download_and_transcribe(
        file_id="file_123",
        transcription_service=mock_transcription_service,
        output_dir=str(tmp_path),
        language="es",
    )

    assert result == "Texto transcrito"
    mock_transcription_service.transcribe.assert_awaited_once_with(
        str(tmp_path / "file_123.mp3"), language="es"
    )


@pytest.mark.asyncio
async def test_download_and_transcribe_cleans_up_on_failure(downloader, mock_audio, tmp_path):
    mp3 = tmp_path / "file_123.mp3"
    mock_audio.export.side_effect = lambda path, format: mp3.write_bytes(b"mp3")
    mock_transcription_service = Mock()
    mock_transcription_service.transcribe = AsyncMock(side_effect=RuntimeError("whisper down"))

    with pytest.raises(RuntimeError, match="whisper down"):
        await downloader.download_and_transcribe(
            file_id="file_123",
            transcription_service=mock_transcription_service,
            output_dir=str(tmp_path),
        )

    assert not mp3.exists()
