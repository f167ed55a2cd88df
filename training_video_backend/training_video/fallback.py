import asyncio, logging
from typing import Awaitable, Callable, List, Optional
from .did_client import DIDClient
from .errors import AvatarJobFailedError, ErrorKind, VideoGenerationError
from .models import AvatarConfig, AvatarRenderResult, RetryConfig
from .retry import DEFAULT_RETRY_CONFIG, with_retry

logger = logging.getLogger(__name__)


def _should_fall_back(e: VideoGenerationError) -> bool:
    # A failed render is tied to the presenter image; try the next one
    if isinstance(e, AvatarJobFailedError):
        return True
    return e.kind == ErrorKind.DID_ERROR and e.retryable


class AvatarFallbackSelector:
    """Render a talk, walking the presenter images in order until one succeeds."""

    def __init__(self, did: DIDClient, avatars: AvatarConfig,
                 retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.did = did
        self.avatars = avatars
        self.retry_config = retry_config
        self._sleep = sleep

    def candidates(self, presenter_url: Optional[str] = None) -> List[str]:
        ordered = [presenter_url or self.avatars.primary, *self.avatars.fallbacks]
        seen = set()
        result = []
        for url in ordered:
            if url and url not in seen:
                seen.add(url)
                result.append(url)
        return result

    async def _render_once(self, presenter_url: str, audio_ref: Optional[str], text: Optional[str]):
        talk_id = await self.did.start_job(presenter_url, audio_ref=audio_ref, text=text)
        video_url = await self.did.wait_for_completion(talk_id)
        return video_url, talk_id

    async def render(self, presenter_url: Optional[str] = None, audio_ref: Optional[str] = None,
                     text: Optional[str] = None) -> AvatarRenderResult:
        candidates = self.candidates(presenter_url)
        failures = []

        for i, url in enumerate(candidates):
            label = "primary" if i == 0 else f"fallback {i}"
            logger.info(f"Rendering with {label} avatar {url}")
            try:
                video_url, talk_id = await with_retry(
                    lambda: self._render_once(url, audio_ref, text),
                    self.retry_config,
                    sleep=self._sleep,
                    label=f"D-ID render ({label})",
                )
            except VideoGenerationError as e:
                if not _should_fall_back(e):
                    raise
                logger.warning(f"{label} avatar {url} failed: {e.message}")
                failures.append(f"{url}: {e.message}")
                continue
            logger.info(f"Avatar video ready with {label} avatar {url}: {video_url}")
            return AvatarRenderResult(video_url=video_url, avatar_used=url, talk_id=talk_id)

        raise VideoGenerationError(
            f"all avatars failed ({len(candidates)} tried): " + "; ".join(failures),
            ErrorKind.DID_ERROR,
            retryable=False,
        )
