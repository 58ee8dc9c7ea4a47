"""ElevenLabs text-to-speech."""

from __future__ import annotations

import structlog
from elevenlabs import AsyncElevenLabs, VoiceSettings
from elevenlabs.core.api_error import ApiError

from ad_composer.config import settings
from ad_composer.errors import MalformedPayloadError, ProviderError

logger = structlog.get_logger()

_VOICE_SETTINGS = VoiceSettings(stability=0.5, similarity_boost=0.75)


class ElevenLabsSynthesizer:
    def __init__(self, api_key: str | None = None, model_id: str | None = None) -> None:
        self.client = AsyncElevenLabs(
            api_key=api_key if api_key is not None else settings.elevenlabs_api_key
        )
        self.model_id = model_id or settings.elevenlabs_model_id

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Generate speech audio (MP3) for *text*.

        Raises:
            ProviderError: non-success response, carrying status and body.
            MalformedPayloadError: the API returned empty audio data.
        """
        logger.info("elevenlabs_tts.start", voice_id=voice_id, text_len=len(text))

        chunks: list[bytes] = []
        try:
            async for chunk in self.client.text_to_speech.convert(
                voice_id=voice_id,
                text=text,
                model_id=self.model_id,
                voice_settings=_VOICE_SETTINGS,
            ):
                chunks.append(chunk)
        except ApiError as exc:
            raise ProviderError(
                f"ElevenLabs API Error: {exc.status_code} - {exc.body}"
            ) from exc

        audio_data = b"".join(chunks)
        if not audio_data:
            raise MalformedPayloadError(
                f"ElevenLabs returned empty audio for voice_id={voice_id}"
            )

        logger.info("elevenlabs_tts.done", bytes=len(audio_data))
        return audio_data
