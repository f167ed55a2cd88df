import logging
from typing import Callable, Dict, List, Optional
from .models import ProgressState, ProgressStep

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressState], None]

PROGRESS_STEPS = {
    ProgressStep.VALIDATING: (10, "Validating the script..."),
    ProgressStep.GENERATING_AUDIO: (30, "Generating audio..."),
    ProgressStep.GENERATING_VIDEO: (70, "Generating video..."),
    ProgressStep.COMPLETED: (100, "Video generation completed!"),
    ProgressStep.ERROR: (0, "An error occurred"),
}

_ORDER = [
    ProgressStep.VALIDATING,
    ProgressStep.GENERATING_AUDIO,
    ProgressStep.GENERATING_VIDEO,
    ProgressStep.COMPLETED,
]


def snapshot(step: ProgressStep, error: Optional[str] = None) -> ProgressState:
    percent, message = PROGRESS_STEPS[step]
    return ProgressState(current_step=step, progress_percent=percent, message=message, error=error)


class ProgressEmitter:
    """Deliver one run's progress snapshots to an optional observer.

    Steps only move forward; ERROR may follow any non-terminal step. A
    repeated or backward step is dropped. Observer failures are logged and
    never reach the pipeline.
    """

    def __init__(self, on_progress: Optional[ProgressCallback] = None, job_id: str = ""):
        self.on_progress = on_progress
        self.job_id = job_id
        self.history: List[ProgressState] = []

    @property
    def current(self) -> Optional[ProgressStep]:
        return self.history[-1].current_step if self.history else None

    @property
    def finished(self) -> bool:
        return self.current in (ProgressStep.COMPLETED, ProgressStep.ERROR)

    def _allowed(self, step: ProgressStep) -> bool:
        if self.finished:
            return False
        if step == ProgressStep.ERROR or self.current is None:
            return True
        return _ORDER.index(step) > _ORDER.index(self.current)

    def emit(self, step: ProgressStep, error: Optional[str] = None) -> Optional[ProgressState]:
        if not self._allowed(step):
            logger.warning(f"[{self.job_id}] ignoring out-of-order progress {step.value} after {self.current}")
            return None
        state = snapshot(step, error)
        self.history.append(state)
        logger.info(f"[{self.job_id}] {step.value} ({state.progress_percent}%)")
        if self.on_progress is not None:
            try:
                self.on_progress(state)
            except Exception as e:
                logger.error(f"[{self.job_id}] progress observer failed: {e}", exc_info=True)
        return state


class ProgressBoard:
    """Latest progress snapshot per job, for status polling. In memory only."""

    def __init__(self):
        self._latest: Dict[str, ProgressState] = {}

    def callback(self, job_id: str) -> ProgressCallback:
        def _record(state: ProgressState):
            self._latest[job_id] = state
        return _record

    def get(self, job_id: str) -> Optional[ProgressState]:
        return self._latest.get(job_id)

    def discard(self, job_id: str) -> None:
        self._latest.pop(job_id, None)
