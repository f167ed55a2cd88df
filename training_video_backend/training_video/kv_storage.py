"""
Script and video job persistence.

ScriptStore holds the record logic on top of four key/value primitives.
InMemoryStore keeps values in a dict (local development and tests); KVStore
talks to a Vercel KV REST endpoint so records survive across processes.
"""
import os
import json
import uuid
import httpx
import logging
from typing import Dict, List, Optional
from .errors import ErrorKind, InvalidTransitionError, RecordNotFoundError, VideoGenerationError
from .models import Script, VideoJob, VideoStatus, utcnow

logger = logging.getLogger(__name__)

SCRIPT_INDEX_KEY = "scripts:index"

# A script mirrors its latest job and may be generated again from either end state
_SCRIPT_TRANSITIONS = {
    VideoStatus.PENDING: {VideoStatus.PROCESSING},
    VideoStatus.PROCESSING: {VideoStatus.COMPLETED, VideoStatus.FAILED},
    VideoStatus.COMPLETED: {VideoStatus.PROCESSING},
    VideoStatus.FAILED: {VideoStatus.PROCESSING},
}

_JOB_FIELDS = set(VideoJob.model_fields) - {"id", "script_id", "created_at", "updated_at"}


def _script_key(script_id: str) -> str:
    return f"script:{script_id}"


def _video_key(job_id: str) -> str:
    return f"video:{job_id}"


def _script_videos_key(script_id: str) -> str:
    return f"script-videos:{script_id}"


class ScriptStore:
    async def _get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def _set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def _delete(self, key: str) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    # ── helpers ──────────────────────────────────────────────────────────

    async def _get_list(self, key: str) -> List[str]:
        raw = await self._get(key)
        return json.loads(raw) if raw else []

    async def _append(self, key: str, value: str) -> None:
        items = await self._get_list(key)
        items.append(value)
        await self._set(key, json.dumps(items))

    async def _require_script(self, script_id: str) -> Script:
        script = await self.get_script(script_id)
        if script is None:
            raise RecordNotFoundError("script", script_id)
        return script

    async def _require_job(self, job_id: str) -> VideoJob:
        job = await self.get_video_job(job_id)
        if job is None:
            raise RecordNotFoundError("video job", job_id)
        return job

    async def _save_script(self, script: Script) -> Script:
        await self._set(_script_key(script.id), script.model_dump_json())
        return script

    async def _save_job(self, job: VideoJob) -> VideoJob:
        await self._set(_video_key(job.id), job.model_dump_json())
        return job

    # ── scripts ──────────────────────────────────────────────────────────

    async def create_script(self, title: str, content: str) -> Script:
        script = Script(id=str(uuid.uuid4()), title=title, content=content)
        await self._save_script(script)
        await self._append(SCRIPT_INDEX_KEY, script.id)
        logger.info(f"Created script {script.id}")
        return script

    async def get_script(self, script_id: str) -> Optional[Script]:
        raw = await self._get(_script_key(script_id))
        return Script.model_validate_json(raw) if raw else None

    async def list_scripts(self) -> List[Script]:
        scripts = []
        for script_id in reversed(await self._get_list(SCRIPT_INDEX_KEY)):
            script = await self.get_script(script_id)
            if script is not None:
                scripts.append(script)
        return sorted(scripts, key=lambda s: s.created_at, reverse=True)

    async def update_script_status(self, script_id: str, status: VideoStatus) -> Script:
        script = await self._require_script(script_id)
        if script.status == status:
            return script
        if status not in _SCRIPT_TRANSITIONS[script.status]:
            raise InvalidTransitionError("script", script_id, script.status, status)
        script.status = status
        script.updated_at = utcnow()
        return await self._save_script(script)

    async def update_script_video_url(self, script_id: str, video_url: str) -> Script:
        script = await self._require_script(script_id)
        script.video_url = video_url
        script.updated_at = utcnow()
        return await self._save_script(script)

    async def delete_script(self, script_id: str) -> None:
        await self._require_script(script_id)
        for job_id in await self._get_list(_script_videos_key(script_id)):
            await self._delete(_video_key(job_id))
        await self._delete(_script_videos_key(script_id))
        await self._delete(_script_key(script_id))
        remaining = [i for i in await self._get_list(SCRIPT_INDEX_KEY) if i != script_id]
        await self._set(SCRIPT_INDEX_KEY, json.dumps(remaining))
        logger.info(f"Deleted script {script_id}")

    # ── video jobs ───────────────────────────────────────────────────────

    async def create_video_job(self, script_id: str) -> VideoJob:
        await self._require_script(script_id)
        job = VideoJob(id=str(uuid.uuid4()), script_id=script_id)
        await self._save_job(job)
        await self._append(_script_videos_key(script_id), job.id)
        logger.info(f"Created video job {job.id} for script {script_id}")
        return job

    async def get_video_job(self, job_id: str) -> Optional[VideoJob]:
        raw = await self._get(_video_key(job_id))
        return VideoJob.model_validate_json(raw) if raw else None

    async def list_video_jobs(self, script_id: str) -> List[VideoJob]:
        jobs = []
        for job_id in await self._get_list(_script_videos_key(script_id)):
            job = await self.get_video_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def update_video_job(self, job_id: str, **fields) -> VideoJob:
        unknown = set(fields) - _JOB_FIELDS
        if unknown:
            raise ValueError(f"unknown video job fields: {', '.join(sorted(unknown))}")
        job = await self._require_job(job_id)
        if "status" in fields:
            new = VideoStatus(fields["status"])
            if new != job.status and not job.status.can_transition_to(new):
                raise InvalidTransitionError("video job", job_id, job.status, new)
            fields["status"] = new
        job = job.model_copy(update={**fields, "updated_at": utcnow()})
        return await self._save_job(job)


class InMemoryStore(ScriptStore):
    def __init__(self):
        self._data: Dict[str, str] = {}

    async def _get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def _set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def _delete(self, key: str) -> None:
        self._data.pop(key, None)


class KVStore(ScriptStore):
    def __init__(self, url: Optional[str] = None, token: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.kv_rest_api_url = (url or os.getenv("KV_REST_API_URL", "")).rstrip("/")
        self.kv_rest_api_token = token or os.getenv("KV_REST_API_TOKEN", "")
        if not self.kv_rest_api_url or not self.kv_rest_api_token:
            raise ValueError("KV_REST_API_URL and KV_REST_API_TOKEN are required for KVStore")
        self._http = http_client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.kv_rest_api_token}",
            "Content-Type": "application/json"
        }

    async def _command(self, command: str, args: list):
        try:
            if self._http is not None:
                response = await self._http.post(f"{self.kv_rest_api_url}/{command}", headers=self._headers(), json=args)
            else:
                async with httpx.AsyncClient(timeout=10) as client:
                    response = await client.post(f"{self.kv_rest_api_url}/{command}", headers=self._headers(), json=args)
            response.raise_for_status()
            return response.json().get("result")
        except httpx.HTTPError as e:
            logger.error(f"KV {command} {args[0]} failed: {e}")
            raise VideoGenerationError(f"KV storage request failed: {e}", ErrorKind.NETWORK_ERROR, cause=e) from e

    async def _get(self, key: str) -> Optional[str]:
        return await self._command("get", [key])

    async def _set(self, key: str, value: str) -> None:
        await self._command("set", [key, value])

    async def _delete(self, key: str) -> None:
        await self._command("del", [key])

    async def ping(self) -> bool:
        try:
            await self._command("get", [SCRIPT_INDEX_KEY])
            return True
        except VideoGenerationError:
            return False


def get_store() -> ScriptStore:
    if os.getenv("KV_REST_API_URL") and os.getenv("KV_REST_API_TOKEN"):
        logger.info("KV storage enabled")
        return KVStore()
    logger.warning("KV storage not configured - falling back to in-memory storage")
    return InMemoryStore()
