from enum import Enum, auto


class PipelineState(Enum):
    IDLE = auto()
    RECORDING = auto()
    TRANSCRIBING = auto()
    COMPLETING = auto()
    SPEAKING = auto()
    ERROR = auto()

    @property
    def is_active(self) -> bool:
        return self not in (PipelineState.IDLE, PipelineState.ERROR)


VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.RECORDING},
    PipelineState.RECORDING: {PipelineState.TRANSCRIBING, PipelineState.ERROR},
    PipelineState.TRANSCRIBING: {PipelineState.COMPLETING, PipelineState.ERROR},
    PipelineState.COMPLETING: {PipelineState.SPEAKING, PipelineState.ERROR},
    PipelineState.SPEAKING: {PipelineState.IDLE, PipelineState.ERROR},
    PipelineState.ERROR: {PipelineState.IDLE},
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: PipelineState, target: PipelineState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
