import os, base64, logging
from typing import Optional
import openai
from .errors import ErrorKind, VideoGenerationError
from .models import SpeechResult
from . import settings

logger = logging.getLogger(__name__)

# 4xx responses that will not succeed on a second try
_PERMANENT_ERRORS = (
    openai.BadRequestError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)

_CREDIT_MARKERS = ("insufficient_quota", "insufficient quota", "exceeded your current quota", "billing", "credit")


def _is_credit_error(e: Exception) -> bool:
    if isinstance(e, openai.APIStatusError) and e.status_code == 402:
        return True
    code = getattr(e, "code", None)
    if code == "insufficient_quota":
        return True
    text = str(e).lower()
    return isinstance(e, openai.APIError) and any(m in text for m in _CREDIT_MARKERS)


def to_data_url(audio: bytes, mime: str = "audio/mpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(audio).decode('ascii')}"


class OpenAITTSClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 voice: Optional[str] = None, client=None):
        self.api_key = api_key
        self.model = model or settings.OPENAI_TTS_MODEL
        self.voice = voice or settings.OPENAI_TTS_VOICE
        self._client = client

    def _get_client(self):
        if self._client is None:
            api_key = self.api_key or os.getenv("OPENAI_API_KEY", "")
            if not api_key:
                raise VideoGenerationError("OPENAI_API_KEY is not set; please configure your .env",
                                           ErrorKind.OPENAI_ERROR, retryable=False)
            self._client = openai.AsyncOpenAI(api_key=api_key)
        return self._client

    async def synthesize(self, text: str) -> SpeechResult:
        logger.info(f"Requesting speech from OpenAI ({self.model}/{self.voice}) for {len(text)} chars")
        client = self._get_client()
        try:
            response = await client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format="mp3",
            )
            audio = response.content
        except Exception as e:
            raise self._classify(e) from e

        if not audio:
            raise VideoGenerationError("OpenAI returned an empty audio payload", ErrorKind.OPENAI_ERROR)
        logger.info(f"Received {len(audio)} bytes of audio from OpenAI")
        return SpeechResult(audio_ref=to_data_url(audio))

    def _classify(self, e: Exception) -> VideoGenerationError:
        if _is_credit_error(e):
            logger.error(f"OpenAI reported insufficient credit: {e}")
            return VideoGenerationError(f"OpenAI quota exhausted: {e}", ErrorKind.CREDIT_INSUFFICIENT, cause=e)
        if isinstance(e, _PERMANENT_ERRORS):
            logger.error(f"OpenAI rejected the speech request: {e}")
            return VideoGenerationError(f"TTS generation failed: {e}", ErrorKind.OPENAI_ERROR, cause=e, retryable=False)
        logger.warning(f"OpenAI speech request failed: {e}")
        return VideoGenerationError(f"TTS generation failed: {e}", ErrorKind.OPENAI_ERROR, cause=e)

    async def validate_api_key(self) -> bool:
        try:
            await self._get_client().models.list()
            return True
        except Exception as e:
            logger.warning(f"OpenAI key validation failed: {e}")
            return False
