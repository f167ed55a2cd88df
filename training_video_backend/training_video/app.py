import time
import asyncio
import logging
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

# Ensure .env is loaded before importing modules that initialize API clients
from .settings import has_all_keys, missing_keys, ALLOWED_ORIGINS
from .avatars import AVATARS, find_avatar, list_avatars
from .did_client import DIDClient
from .kv_storage import ScriptStore, get_store
from .models import (AvatarCategory, ProgressState, ProgressStep, Script, ScriptCreateRequest,
                     VideoGenerateRequest, VideoJob, VideoStatus)
from .orchestrator import VideoGenerationPipeline, build_pipeline
from .progress import ProgressBoard, snapshot

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _check(service: str, ok: bool, message: str, started: float) -> dict:
    return {
        "service": service,
        "status": "healthy" if ok else "unhealthy",
        "message": message,
        "response_time_ms": int((time.monotonic() - started) * 1000),
    }


def _final_progress(job: VideoJob) -> Optional[ProgressState]:
    if job.status == VideoStatus.COMPLETED:
        return snapshot(ProgressStep.COMPLETED)
    if job.status == VideoStatus.FAILED:
        return snapshot(ProgressStep.ERROR, job.error_message)
    return None


def create_app(store: Optional[ScriptStore] = None, pipeline: Optional[VideoGenerationPipeline] = None,
               did: Optional[DIDClient] = None) -> FastAPI:
    store = store or (pipeline.store if pipeline else get_store())
    pipeline = pipeline or build_pipeline(store)
    did = did or DIDClient()
    board = ProgressBoard()
    background_tasks = set()

    app = FastAPI(title="Training Video Backend")
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.progress = board

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        keys_ok = has_all_keys()
        logger.info(f"Health check: API keys present = {keys_ok}")
        return {"ok": True, "has_keys": keys_ok}

    @app.get("/health/deep")
    async def deep_health():
        started = time.monotonic()
        missing = missing_keys()
        env = _check("Environment Variables", not missing,
                     f"Missing variables: {', '.join(missing)}" if missing else "All required environment variables are set",
                     started)

        started = time.monotonic()
        store_ok = await store.ping()
        storage = _check("Storage", store_ok, "Connection successful" if store_ok else "Connection error", started)

        started = time.monotonic()
        did_ok = await did.check_connection() if not missing else False
        avatar_api = _check("D-ID API", did_ok, "API connection successful" if did_ok else "API connection failed", started)

        services = [env, storage, avatar_api]
        overall = "healthy" if all(s["status"] == "healthy" for s in services) else "unhealthy"
        logger.info(f"System health check: {overall}")
        return {"overall": overall, "services": services}

    # --- scripts ---

    @app.post("/v1/scripts", response_model=Script)
    async def create_script(req: ScriptCreateRequest):
        return await store.create_script(req.title, req.content)

    @app.get("/v1/scripts", response_model=List[Script])
    async def list_scripts():
        return await store.list_scripts()

    @app.get("/v1/scripts/{script_id}", response_model=Script)
    async def get_script(script_id: str):
        script = await store.get_script(script_id)
        if not script:
            raise HTTPException(404, "script not found")
        return script

    @app.get("/v1/scripts/{script_id}/videos", response_model=List[VideoJob])
    async def list_script_videos(script_id: str):
        if not await store.get_script(script_id):
            raise HTTPException(404, "script not found")
        return await store.list_video_jobs(script_id)

    # --- video generation ---

    async def _background_generate(job_id: str, presenter_url: Optional[str]):
        try:
            job = await pipeline.generate(job_id, presenter_url=presenter_url, on_progress=board.callback(job_id))
        finally:
            # Finished jobs report progress from their persisted status
            board.discard(job_id)
        status = job.status.value if job else "unknown"
        logger.info(f"Background generation finished for job {job_id}: {status}")

    @app.post("/v1/videos:generate")
    async def start_generation(req: VideoGenerateRequest):
        # Validate API keys are present
        if not has_all_keys():
            logger.error("API keys missing, cannot start job")
            raise HTTPException(500, "Server configuration error: missing required API keys")

        if not await store.get_script(req.script_id):
            raise HTTPException(404, "script not found")

        job = await store.create_video_job(req.script_id)
        logger.info(f"Starting video job {job.id} for script {req.script_id}")

        task = asyncio.create_task(_background_generate(job.id, req.presenter_url))
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

        return {"job_id": job.id, "status": VideoStatus.PENDING.value}

    @app.get("/v1/videos/{job_id}")
    async def video_status(job_id: str):
        job = await store.get_video_job(job_id)
        if not job:
            raise HTTPException(404, "job not found")
        progress = board.get(job_id) or _final_progress(job)
        avatar = find_avatar(job.avatar_used) if job.avatar_used else None
        return {
            **job.model_dump(mode="json"),
            "avatar_name": avatar.name if avatar else None,
            "progress": progress.model_dump(mode="json") if progress else None,
        }

    # --- avatars ---

    @app.get("/v1/avatars")
    def avatars(category: Optional[AvatarCategory] = None, active_only: bool = True,
                search: Optional[str] = None, limit: int = Query(50), offset: int = Query(0)):
        if limit < 1 or limit > 100:
            raise HTTPException(400, "limit must be between 1 and 100")
        if offset < 0:
            raise HTTPException(400, "offset must be non-negative")
        matches = list_avatars(category=category, active_only=active_only, search=search,
                               limit=len(AVATARS), offset=0)
        items = matches[offset:offset + limit]
        return {"avatars": [a.model_dump(mode="json") for a in items], "total": len(matches), "success": True}

    return app


app = create_app()
