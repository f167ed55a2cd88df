from training_video.models import ProgressStep
from training_video.progress import PROGRESS_STEPS, ProgressBoard, ProgressEmitter


def test_step_percentages():
    assert {step: pct for step, (pct, _) in PROGRESS_STEPS.items()} == {
        ProgressStep.VALIDATING: 10,
        ProgressStep.GENERATING_AUDIO: 30,
        ProgressStep.GENERATING_VIDEO: 70,
        ProgressStep.COMPLETED: 100,
        ProgressStep.ERROR: 0,
    }


def test_emits_forward_sequence_to_observer():
    seen = []
    emitter = ProgressEmitter(seen.append, job_id="job-1")
    for step in (ProgressStep.VALIDATING, ProgressStep.GENERATING_AUDIO,
                 ProgressStep.GENERATING_VIDEO, ProgressStep.COMPLETED):
        emitter.emit(step)
    assert [s.progress_percent for s in seen] == [10, 30, 70, 100]
    assert emitter.finished


def test_backward_and_repeated_steps_are_dropped():
    seen = []
    emitter = ProgressEmitter(seen.append)
    emitter.emit(ProgressStep.GENERATING_AUDIO)
    assert emitter.emit(ProgressStep.VALIDATING) is None
    assert emitter.emit(ProgressStep.GENERATING_AUDIO) is None
    assert [s.current_step for s in seen] == [ProgressStep.GENERATING_AUDIO]


def test_error_is_terminal():
    seen = []
    emitter = ProgressEmitter(seen.append)
    emitter.emit(ProgressStep.VALIDATING)
    state = emitter.emit(ProgressStep.ERROR, error="script must not be empty")
    assert state.progress_percent == 0
    assert state.error == "script must not be empty"
    assert emitter.emit(ProgressStep.GENERATING_AUDIO) is None
    assert emitter.emit(ProgressStep.ERROR) is None
    assert len(seen) == 2


def test_nothing_after_completed():
    emitter = ProgressEmitter()
    emitter.emit(ProgressStep.COMPLETED)
    assert emitter.emit(ProgressStep.ERROR) is None


def test_observer_exception_is_swallowed():
    def boom(state):
        raise RuntimeError("observer broke")

    emitter = ProgressEmitter(boom)
    assert emitter.emit(ProgressStep.VALIDATING) is not None
    assert emitter.emit(ProgressStep.GENERATING_AUDIO) is not None
    assert len(emitter.history) == 2


def test_board_keeps_latest_snapshot_per_job():
    board = ProgressBoard()
    emitter = ProgressEmitter(board.callback("job-1"))
    emitter.emit(ProgressStep.VALIDATING)
    emitter.emit(ProgressStep.GENERATING_AUDIO)
    assert board.get("job-1").current_step == ProgressStep.GENERATING_AUDIO
    assert board.get("job-2") is None
    board.discard("job-1")
    assert board.get("job-1") is None
