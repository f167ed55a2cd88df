import os, httpx, asyncio, logging
from typing import Any, Dict, Optional
from .errors import AvatarJobFailedError, ErrorKind, VideoGenerationError
from .models import TalkStatus
from . import settings

logger = logging.getLogger(__name__)

TERMINAL_FAILURES = ("error", "rejected")

# Client errors that mean the request itself is wrong
_PERMANENT_STATUS = {400, 401, 403, 404, 422}


def _error_detail(body: Dict[str, Any]) -> Optional[str]:
    err = body.get("error")
    if isinstance(err, dict):
        return err.get("description") or err.get("kind")
    return err


class DIDClient:
    """Thin async adapter over the D-ID talks API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 poll_interval_ms: Optional[int] = None, max_poll_attempts: Optional[int] = None,
                 timeout: float = 30):
        self.api_key = api_key
        self.base_url = (base_url or settings.DID_API_URL).rstrip("/")
        self.poll_interval_ms = settings.DID_POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms
        self.max_poll_attempts = max_poll_attempts or settings.DID_POLL_MAX_ATTEMPTS
        self.timeout = timeout
        self._http = http_client

    def _headers(self) -> Dict[str, str]:
        api_key = self.api_key or os.getenv("DID_API_KEY", "")
        if not api_key:
            raise VideoGenerationError("DID_API_KEY is not set; please configure your .env",
                                       ErrorKind.DID_ERROR, retryable=False)
        return {
            "Authorization": f"Basic {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        try:
            if self._http is not None:
                r = await self._http.request(method, url, headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"D-ID {method} {path} transport failure: {e}")
            raise VideoGenerationError(f"D-ID API request failed: {e}", ErrorKind.DID_ERROR, cause=e) from e

        if r.status_code >= 400:
            logger.error(f"D-ID {method} {path} failed {r.status_code}: {r.text}")
            message = f"D-ID API error: {r.status_code} {r.text}"
            if r.status_code == 402:
                raise VideoGenerationError(message, ErrorKind.CREDIT_INSUFFICIENT)
            raise VideoGenerationError(message, ErrorKind.DID_ERROR,
                                       retryable=r.status_code not in _PERMANENT_STATUS)
        return r

    async def start_job(self, presenter_url: str, audio_ref: Optional[str] = None,
                        text: Optional[str] = None) -> str:
        if audio_ref:
            script = {"type": "audio", "audio_url": audio_ref}
        elif text:
            script = {"type": "text", "input": text, "subtitles": False}
        else:
            raise ValueError("either audio_ref or text is required")

        body = {
            "source_url": presenter_url,
            "script": script,
            "config": {"fluent": False, "pad_audio": 0.0, "stitch": True},
        }
        logger.info(f"Creating D-ID talk with presenter {presenter_url} ({script['type']} input)")
        r = await self._request("POST", "/talks", json=body)
        talk_id = r.json().get("id")
        if not talk_id:
            raise VideoGenerationError("No talk id returned from D-ID API", ErrorKind.DID_ERROR)
        logger.info(f"D-ID talk created with ID: {talk_id}")
        return talk_id

    async def poll_status(self, talk_id: str) -> TalkStatus:
        r = await self._request("GET", f"/talks/{talk_id}")
        body = r.json()
        return TalkStatus(
            status=body.get("status", "unknown"),
            result_url=body.get("result_url"),
            error_detail=_error_detail(body),
        )

    async def wait_for_completion(self, talk_id: str, max_attempts: Optional[int] = None,
                                  interval_ms: Optional[int] = None) -> str:
        max_attempts = max_attempts or self.max_poll_attempts
        interval_ms = self.poll_interval_ms if interval_ms is None else interval_ms

        for attempt in range(max_attempts):
            status = await self.poll_status(talk_id)
            logger.info(f"D-ID talk {talk_id} status: {status.status} (poll {attempt + 1}/{max_attempts})")

            if status.status == "done":
                if not status.result_url:
                    raise VideoGenerationError(f"D-ID talk {talk_id} finished without a result url",
                                               ErrorKind.DID_ERROR, retryable=False)
                return status.result_url
            if status.status in TERMINAL_FAILURES:
                raise AvatarJobFailedError(talk_id, status.status, status.error_detail)

            if attempt < max_attempts - 1:
                await asyncio.sleep(interval_ms / 1000.0)

        logger.error(f"D-ID talk {talk_id} polling timeout after {max_attempts} attempts")
        raise VideoGenerationError(f"Video generation timed out: talk {talk_id}", ErrorKind.DID_ERROR, retryable=True)

    async def delete_job(self, talk_id: str) -> None:
        await self._request("DELETE", f"/talks/{talk_id}")
        logger.info(f"Deleted D-ID talk {talk_id}")

    async def check_connection(self) -> bool:
        try:
            await self._request("GET", "/credits")
            return True
        except VideoGenerationError as e:
            logger.warning(f"D-ID connection check failed: {e.message}")
            return False
