import base64
import logging
import re

from openai import AsyncOpenAI

from core.errors import SynthesisError


def clean_text_for_speech(text: str) -> str:
    # Newlines break the speech endpoint's pacing; collapse them to spaces.
    return re.sub(r"\n+", " ", text or "").strip()


class TextToVoice:
    def __init__(
        self,
        api_key: str,
        model: str = "tts-1",
        voice: str = "alloy",
        response_format: str = "mp3",
        timeout: float = 30.0,
    ):
        if not api_key:
            raise Exception("OPENAI_API_KEY not set in environment variables.")

        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.voice = voice
        self.response_format = response_format
        self.logger = logging.getLogger(__name__)

    async def synthesize(self, text: str) -> bytes:
        clean_text = clean_text_for_speech(text)
        if not clean_text:
            raise SynthesisError("Empty text provided for synthesis")

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=clean_text,
                response_format=self.response_format,
            )
        except Exception as e:
            raise SynthesisError(f"TTS request failed: {e}") from e

        audio = response.content
        if not audio:
            raise SynthesisError("TTS returned an empty audio payload")

        self.logger.info(f"✅ TTS Generated: {clean_text[:50]}... ({len(audio)} bytes)")
        return audio

    async def synthesize_data_uri(self, text: str) -> str:
        """Synthesizes `text` and returns it as a base64 `data:` URI the browser can play directly."""
        audio = await self.synthesize(text)
        encoded = base64.b64encode(audio).decode("ascii")
        return f"data:audio/{self.response_format};base64,{encoded}"

    async def close(self) -> None:
        await self.client.close()
