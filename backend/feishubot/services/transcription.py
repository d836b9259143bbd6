"""
Speech-to-Text Transcription Service using OpenAI Whisper API.
Feishu voice messages are transcribed and then handled like typed text.
"""

import io
import logging
from typing import Optional
import openai
from openai import AsyncOpenAI

from ..exceptions import BackendError

logger = logging.getLogger(__name__)


class TranscriptionService:
    """
    Service for transcribing audio files to text using OpenAI Whisper API.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: float = 60.0):
        """
        Initialize transcription service.

        Args:
            api_key: OpenAI API key. Without one the service reports itself unconfigured.
            base_url: Optional OpenAI-compatible base URL
            timeout: Seconds to wait for a transcription
        """
        self.api_key = api_key
        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url, timeout=timeout)
        else:
            self.client = None

    async def transcribe_audio(
        self,
        audio_data: bytes,
        filename: str = "audio.opus",
        language: Optional[str] = None,
    ) -> str:
        """
        Transcribe audio to text using OpenAI Whisper.

        Args:
            audio_data: Raw audio file bytes
            filename: Filename hint, helps Whisper detect the format
            language: ISO 639-1 language code; auto-detected when omitted

        Returns:
            Transcribed text

        Raises:
            BackendError: If the service is not configured or transcription fails
        """
        if not self.client:
            raise BackendError("transcribe_audio", "OpenAI API key not configured")

        audio_file = io.BytesIO(audio_data)
        audio_file.name = filename

        transcription_params = {
            "model": "whisper-1",
            "file": audio_file,
        }
        if language:
            transcription_params["language"] = language

        try:
            response = await self.client.audio.transcriptions.create(**transcription_params)
        except openai.OpenAIError as e:
            logger.error(f"Transcription failed: {e}", exc_info=True)
            raise BackendError("transcribe_audio", str(e)) from e

        return response.text

    def is_configured(self) -> bool:
        """Whether an API key was provided."""
        return self.client is not None
