from typing import Dict, List
from unittest.mock import AsyncMock
import pytest

from training_video.errors import ErrorKind, VideoGenerationError
from training_video.fallback import AvatarFallbackSelector
from training_video.kv_storage import InMemoryStore
from training_video.models import AvatarConfig, RetryConfig, SpeechResult
from training_video.orchestrator import VideoGenerationPipeline

PRIMARY = "https://d-id-public-bucket.s3.us-west-2.amazonaws.com/alice.jpg"
FALLBACK_1 = "https://d-id-public-bucket.s3.us-west-2.amazonaws.com/amy.jpg"
FALLBACK_2 = "https://d-id-public-bucket.s3.us-west-2.amazonaws.com/anna.jpg"

NO_RETRY = RetryConfig(max_retries=0, retry_delay_ms=1, exponential_backoff=False)


@pytest.fixture(autouse=True)
def api_keys(monkeypatch):
    """Every test runs with both provider keys present and no KV backend."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("DID_API_KEY", "did-test-key")
    monkeypatch.delenv("KV_REST_API_URL", raising=False)
    monkeypatch.delenv("KV_REST_API_TOKEN", raising=False)


class FakeDID:
    """Stands in for DIDClient. `outcomes` maps a presenter url to a list of
    results consumed per attempt: a video url string, or an exception."""

    def __init__(self, outcomes: Dict[str, list] = None, default: str = "https://cdn.example.com/video.mp4"):
        self.outcomes = outcomes or {}
        self.default = default
        self.started: List[str] = []
        self.inputs: List[tuple] = []
        self._talks: Dict[str, str] = {}

    async def start_job(self, presenter_url, audio_ref=None, text=None):
        self.started.append(presenter_url)
        self.inputs.append((audio_ref, text))
        talk_id = f"talk-{len(self.started)}"
        self._talks[talk_id] = presenter_url
        return talk_id

    async def wait_for_completion(self, talk_id, max_attempts=None, interval_ms=None):
        presenter = self._talks[talk_id]
        queue = self.outcomes.get(presenter)
        result = queue.pop(0) if queue else self.default
        if isinstance(result, BaseException):
            raise result
        return result


async def no_sleep(seconds):
    return None


def make_tts(audio_ref="data:audio/mpeg;base64,SUQz"):
    tts = AsyncMock()
    tts.synthesize = AsyncMock(return_value=SpeechResult(audio_ref=audio_ref))
    return tts


def make_pipeline(store=None, tts=None, did=None, avatars=None, retry_config=NO_RETRY):
    store = store or InMemoryStore()
    avatars = avatars or AvatarConfig(primary=PRIMARY, fallbacks=[FALLBACK_1, FALLBACK_2])
    selector = AvatarFallbackSelector(did or FakeDID(), avatars, retry_config, sleep=no_sleep)
    return VideoGenerationPipeline(store, tts or make_tts(), selector, retry_config, sleep=no_sleep)


@pytest.fixture
def store():
    return InMemoryStore()


def did_unavailable(message="D-ID API error: 503 unavailable"):
    return VideoGenerationError(message, ErrorKind.DID_ERROR, retryable=True)
