import asyncio, logging
from typing import Awaitable, Callable, Optional
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END
from .avatars import default_avatar_config
from .did_client import DIDClient
from .errors import InvalidTransitionError, RecordNotFoundError, VideoGenerationError, classify
from .fallback import AvatarFallbackSelector
from .kv_storage import ScriptStore, get_store
from .models import PipelineState, ProgressStep, RetryConfig, VideoJob, VideoStatus
from .progress import ProgressCallback, ProgressEmitter
from .retry import DEFAULT_RETRY_CONFIG, retry_config_from_settings, with_retry
from .tts_client import OpenAITTSClient
from .validation import validate_script_or_raise

logger = logging.getLogger(__name__)

# Placeholder speaking rate used for the stored duration estimate
CHARS_PER_SECOND = 5


def estimate_duration(content: str) -> int:
    return len(content) // CHARS_PER_SECOND


def _progress(config: RunnableConfig) -> ProgressEmitter:
    return config["configurable"]["progress"]


class VideoGenerationPipeline:
    """
    Script -> speech -> avatar video.

    Usage:
        pipeline = build_pipeline()

        # background callers: never raises, outcome is persisted
        job = await pipeline.generate(job_id)

        # synchronous callers: re-raises the classified error
        job = await pipeline.run(job_id, on_progress=print)
    """

    def __init__(self, store: ScriptStore, tts: OpenAITTSClient, avatars: AvatarFallbackSelector,
                 retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.store = store
        self.tts = tts
        self.avatars = avatars
        self.retry_config = retry_config
        self._sleep = sleep
        self.graph = self.build_graph()

    # ── graph nodes ──────────────────────────────────────────────────────

    async def node_validate(self, state: PipelineState, config: RunnableConfig) -> dict:
        _progress(config).emit(ProgressStep.VALIDATING)
        validate_script_or_raise(state.content)
        return {"validated": True}

    async def node_audio(self, state: PipelineState, config: RunnableConfig) -> dict:
        _progress(config).emit(ProgressStep.GENERATING_AUDIO)
        speech = await with_retry(
            lambda: self.tts.synthesize(state.content),
            self.retry_config,
            sleep=self._sleep,
            label=f"[{state.job_id}] speech synthesis",
        )
        return {"audio_ref": speech.audio_ref}

    async def node_video(self, state: PipelineState, config: RunnableConfig) -> dict:
        _progress(config).emit(ProgressStep.GENERATING_VIDEO)
        result = await self.avatars.render(presenter_url=state.presenter_url, audio_ref=state.audio_ref)
        return {"video_url": result.video_url, "avatar_used": result.avatar_used, "talk_id": result.talk_id}

    async def node_finalize(self, state: PipelineState, config: RunnableConfig) -> dict:
        await self.store.update_video_job(
            state.job_id,
            status=VideoStatus.COMPLETED,
            video_url=state.video_url,
            avatar_used=state.avatar_used,
            talk_id=state.talk_id,
            duration=estimate_duration(state.content),
        )
        await self.store.update_script_video_url(state.script_id, state.video_url)
        await self._mark_script(state.script_id, VideoStatus.COMPLETED)
        _progress(config).emit(ProgressStep.COMPLETED)
        return {"video_url": state.video_url}

    def build_graph(self):
        g = StateGraph(PipelineState)
        g.add_node("validate", self.node_validate)
        g.add_node("audio", self.node_audio)
        g.add_node("video", self.node_video)
        g.add_node("finalize", self.node_finalize)
        g.set_entry_point("validate")
        g.add_edge("validate", "audio")
        g.add_edge("audio", "video")
        g.add_edge("video", "finalize")
        g.add_edge("finalize", END)
        return g.compile()

    # ── entry points ─────────────────────────────────────────────────────

    async def run(self, job_id: str, presenter_url: Optional[str] = None,
                  on_progress: Optional[ProgressCallback] = None) -> VideoJob:
        job = await self.store.get_video_job(job_id)
        if job is None:
            raise RecordNotFoundError("video job", job_id)
        script = await self.store.get_script(job.script_id)
        if script is None:
            raise RecordNotFoundError("script", job.script_id)
        if job.status.is_terminal:
            raise InvalidTransitionError("video job", job_id, job.status, VideoStatus.PROCESSING)

        progress = ProgressEmitter(on_progress, job_id=job_id)
        state = PipelineState(job_id=job_id, script_id=script.id, content=script.content,
                              presenter_url=presenter_url)
        try:
            await self.store.update_video_job(job_id, status=VideoStatus.PROCESSING)
            await self._mark_script(script.id, VideoStatus.PROCESSING)
            logger.info(f"Starting pipeline for job {job_id} (script {script.id})")
            final_state = await self.graph.ainvoke(state, config={"configurable": {"progress": progress}})
            logger.info(f"Pipeline completed for job {job_id}: {final_state.get('video_url')}")
        except RecordNotFoundError:
            logger.error(f"Pipeline for job {job_id} lost its records", exc_info=True)
            progress.emit(ProgressStep.ERROR, error="record not found")
            raise
        except Exception as e:
            error = classify(e)
            logger.error(f"Pipeline failed for job {job_id}: {error!r}", exc_info=True)
            progress.emit(ProgressStep.ERROR, error=error.message)
            await self._persist_failure(job_id, script.id, error)
            if error is e:
                raise
            raise error from e

        return await self.store.get_video_job(job_id)

    async def _persist_failure(self, job_id: str, script_id: str, error: VideoGenerationError):
        job = await self.store.get_video_job(job_id)
        if job is None:
            raise RecordNotFoundError("video job", job_id)
        if job.status.is_terminal:
            return
        if job.status == VideoStatus.PENDING:
            await self.store.update_video_job(job_id, status=VideoStatus.PROCESSING)
        await self.store.update_video_job(job_id, status=VideoStatus.FAILED, error_message=error.message)
        await self._mark_script(script_id, VideoStatus.FAILED)

    async def _mark_script(self, script_id: str, status: VideoStatus):
        # Another job on the same script may have moved it already
        try:
            await self.store.update_script_status(script_id, status)
        except InvalidTransitionError as e:
            logger.warning(f"Leaving script status unchanged: {e}")

    async def generate(self, job_id: str, presenter_url: Optional[str] = None,
                       on_progress: Optional[ProgressCallback] = None) -> Optional[VideoJob]:
        """Fire-and-forget variant of run: failures are logged, never raised."""
        try:
            return await self.run(job_id, presenter_url=presenter_url, on_progress=on_progress)
        except Exception as e:
            logger.error(f"Background generation for job {job_id} ended with {type(e).__name__}: {e}")
            try:
                return await self.store.get_video_job(job_id)
            except Exception:
                logger.error(f"Could not reload job {job_id} after failure", exc_info=True)
                return None

    async def create_and_generate(self, title: str, content: str, presenter_url: Optional[str] = None,
                                  on_progress: Optional[ProgressCallback] = None) -> VideoJob:
        script = await self.store.create_script(title, content)
        job = await self.store.create_video_job(script.id)
        return await self.run(job.id, presenter_url=presenter_url, on_progress=on_progress)


def build_pipeline(store: Optional[ScriptStore] = None) -> VideoGenerationPipeline:
    retry_config = retry_config_from_settings()
    selector = AvatarFallbackSelector(DIDClient(), default_avatar_config(), retry_config)
    return VideoGenerationPipeline(store or get_store(), OpenAITTSClient(), selector, retry_config)
