# -- Stage Buffers and Ping-Pong Discipline -- #

'''
Buffers shared between pipeline stages.

Every buffer records which stage last wrote it, and in which step.
A consumer asks for its input through `requireWrittenBy`, which
raises PipelineOrderingError when the producer of the current step
has not finished writing it. The check never fires when the stages
run in order; it turns a scheduling bug into a loud failure instead
of a silent read of stale data.

The particle state is double buffered: stages read the committed
front buffer and the integrator writes the back buffer, which only
becomes the front on commit.
'''

from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from computationalFluids.GridSph.errors import PipelineOrderingError


T = TypeVar('T')


######################################################################
# -- Pipeline Stages -- #
######################################################################

class PipelineStage(Enum):
    '''Stages of one simulation step, including the external sort.'''

    BUILD_GRID = 'buildGrid'
    SORT_GRID = 'sortGrid'
    CLEAR_GRID_INDICES = 'clearGridIndices'
    BUILD_GRID_INDICES = 'buildGridIndices'
    REARRANGE_PARTICLES = 'rearrangeParticles'
    DENSITY = 'density'
    FORCE = 'force'
    INTEGRATE = 'integrate'


# Execution order of the grid pipeline
GRID_STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.BUILD_GRID,
    PipelineStage.SORT_GRID,
    PipelineStage.CLEAR_GRID_INDICES,
    PipelineStage.BUILD_GRID_INDICES,
    PipelineStage.REARRANGE_PARTICLES,
    PipelineStage.DENSITY,
    PipelineStage.FORCE,
    PipelineStage.INTEGRATE,
)

# The simple (O(N^2)) pipeline skips the grid stages
SIMPLE_STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.DENSITY,
    PipelineStage.FORCE,
    PipelineStage.INTEGRATE,
)


######################################################################
# -- Stage Buffer -- #
######################################################################

class StageBuffer(Generic[T]):
    '''
    A buffer plus the (step, stage) that last wrote it.

    Parameters:
    -----------
    data : T
        Buffer payload (an array or a ParticleState)
    name : str
        Name used in error messages
    '''

    def __init__(self, data: T, name: str) -> None:
        self.data = data
        self.name = name
        self._stamp: tuple[int, PipelineStage] | None = None

    @property
    def stamp(self) -> tuple[int, PipelineStage] | None:
        '''(step, stage) of the last completed write.'''
        return self._stamp

    def markWritten(self, step: int, stage: PipelineStage) -> None:
        '''Record that `stage` of `step` finished writing this buffer.'''
        self._stamp = (step, stage)

    def invalidate(self) -> None:
        '''Forget the last write, e.g. after an abandoned step.'''
        self._stamp = None

    def requireWrittenBy(self, step: int, stage: PipelineStage) -> T:
        '''
        Return the payload if `stage` of `step` wrote it last.

        Raises:
        -------
        PipelineOrderingError : If the buffer holds another stage's output
        '''
        if self._stamp != (step, stage):
            raise PipelineOrderingError(
                f'Buffer {self.name!r} read in step {step} expecting output of '
                f'{stage.value}, found {self._describeStamp()}'
            )
        return self.data

    def _describeStamp(self) -> str:
        if self._stamp is None:
            return 'no completed write'
        step, stage = self._stamp
        return f'{stage.value} of step {step}'


######################################################################
# -- Ping-Pong Buffer -- #
######################################################################

class PingPongBuffer(Generic[T]):
    '''
    Front (read) and back (write) buffers swapped on commit.

    Parameters:
    -----------
    front : T
        Initial committed payload
    back : T
        Write target payload of the same shape
    name : str
        Name used in error messages
    '''

    def __init__(self, front: T, back: T, name: str) -> None:
        self._buffers = [
            StageBuffer(front, f'{name}[0]'),
            StageBuffer(back, f'{name}[1]'),
        ]
        self._frontIndex = 0

    @property
    def read(self) -> StageBuffer[T]:
        '''Committed buffer, read-only for the running step.'''
        return self._buffers[self._frontIndex]

    @property
    def write(self) -> StageBuffer[T]:
        '''Write target of the running step.'''
        return self._buffers[1 - self._frontIndex]

    def swap(self) -> None:
        '''Make the write buffer the committed one.'''
        self._frontIndex = 1 - self._frontIndex


######################################################################
# -- Stage Sequencer -- #
######################################################################

class StageSequencer:
    '''
    Tracks stage completion within a step against a fixed order.

    Parameters:
    -----------
    order : tuple[PipelineStage, ...]
        Stages of one step in execution order
    '''

    def __init__(self, order: tuple[PipelineStage, ...]) -> None:
        self._order = order
        self._step = 0
        self._position = 0

    @property
    def step(self) -> int:
        '''Step currently being executed (or next to execute).'''
        return self._step

    @property
    def completed(self) -> tuple[PipelineStage, ...]:
        '''Stages completed in the current step.'''
        return self._order[:self._position]

    def begin(self, stage: PipelineStage) -> None:
        '''
        Check that `stage` is the next stage of the current step.

        Raises:
        -------
        PipelineOrderingError : If a predecessor has not completed
        '''
        if self._position >= len(self._order) or self._order[self._position] != stage:
            expected = self._order[self._position].value if self._position < len(self._order) else 'commit'
            raise PipelineOrderingError(
                f'Stage {stage.value} started in step {self._step}; expected {expected}'
            )

    def complete(self, stage: PipelineStage) -> None:
        '''Mark `stage` finished (the barrier has been passed).'''
        self.begin(stage)
        self._position += 1

    def commit(self) -> None:
        '''Close the step after every stage completed.'''
        if self._position != len(self._order):
            raise PipelineOrderingError(
                f'Step {self._step} committed after {self._position} of {len(self._order)} stages'
            )
        self._step += 1
        self._position = 0

    def abandon(self) -> None:
        '''Drop a partially executed step; the step number is reused.'''
        self._position = 0
