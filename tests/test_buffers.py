# -- Stage Buffer and Executor Tests -- #

import threading

import numpy as np
import pytest

from computationalFluids.GridSph.errors import ConfigurationError, PipelineOrderingError
from computationalFluids.GridSph.executor import StageExecutor
from computationalFluids.GridSph.sph.buffers import (
    GRID_STAGE_ORDER,
    SIMPLE_STAGE_ORDER,
    PingPongBuffer,
    PipelineStage,
    StageBuffer,
    StageSequencer,
)


def testStageBufferRequiresProducerStamp():
    buffer = StageBuffer(np.zeros(3), 'densities')
    with pytest.raises(PipelineOrderingError):
        buffer.requireWrittenBy(0, PipelineStage.DENSITY)

    buffer.markWritten(0, PipelineStage.DENSITY)
    assert buffer.requireWrittenBy(0, PipelineStage.DENSITY) is buffer.data

    # Output of the previous step is stale
    with pytest.raises(PipelineOrderingError):
        buffer.requireWrittenBy(1, PipelineStage.DENSITY)
    with pytest.raises(PipelineOrderingError):
        buffer.requireWrittenBy(0, PipelineStage.FORCE)

    buffer.invalidate()
    assert buffer.stamp is None


def testPingPongSwap():
    buffers = PingPongBuffer('a', 'b', 'particles')
    assert (buffers.read.data, buffers.write.data) == ('a', 'b')
    buffers.swap()
    assert (buffers.read.data, buffers.write.data) == ('b', 'a')


def testSequencerEnforcesOrder():
    sequencer = StageSequencer(GRID_STAGE_ORDER)
    with pytest.raises(PipelineOrderingError):
        sequencer.begin(PipelineStage.DENSITY)

    for stage in GRID_STAGE_ORDER[:3]:
        sequencer.complete(stage)
    with pytest.raises(PipelineOrderingError):
        sequencer.begin(PipelineStage.REARRANGE_PARTICLES)
    with pytest.raises(PipelineOrderingError):
        sequencer.commit()

    for stage in GRID_STAGE_ORDER[3:]:
        sequencer.complete(stage)
    sequencer.commit()
    assert sequencer.step == 1
    assert sequencer.completed == ()


def testSequencerAbandonReusesStep():
    sequencer = StageSequencer(SIMPLE_STAGE_ORDER)
    sequencer.complete(PipelineStage.DENSITY)
    sequencer.abandon()
    assert sequencer.step == 0
    sequencer.begin(PipelineStage.DENSITY)


def testSortBetweenBuildAndIndexStages():
    order = list(GRID_STAGE_ORDER)
    assert order.index(PipelineStage.BUILD_GRID) < order.index(PipelineStage.SORT_GRID)
    assert order.index(PipelineStage.SORT_GRID) < order.index(PipelineStage.BUILD_GRID_INDICES)
    assert order[-3:] == list(SIMPLE_STAGE_ORDER)


def testExecutorChunksCoverRange():
    executor = StageExecutor(workerCount=1, chunkSize=4)
    assert executor.chunks(10) == [(0, 4), (4, 8), (8, 10)]
    assert executor.chunks(0) == []


@pytest.mark.parametrize('workers', [1, 3])
def testExecutorWritesEveryItem(workers):
    out = np.zeros(1000, dtype=np.int64)
    seen = set()
    lock = threading.Lock()

    def kernel(start, stop):
        out[start:stop] += np.arange(start, stop)
        with lock:
            seen.add(threading.current_thread().name)

    with StageExecutor(workerCount=workers, chunkSize=64) as executor:
        executor.run(kernel, 1000)

    np.testing.assert_array_equal(out, np.arange(1000))
    assert seen


def testExecutorReraisesChunkError():
    completed = []

    def kernel(start, stop):
        if start == 20:
            raise ValueError('chunk failed')
        completed.append(start)

    with StageExecutor(workerCount=2, chunkSize=10) as executor:
        with pytest.raises(ValueError, match='chunk failed'):
            executor.run(kernel, 50)

    # The barrier still waits for the other chunks
    assert sorted(completed) == [0, 10, 30, 40]


@pytest.mark.parametrize('workers, chunk', [(0, 10), (2, 0)])
def testExecutorRejectsInvalidSizes(workers, chunk):
    with pytest.raises(ConfigurationError):
        StageExecutor(workerCount=workers, chunkSize=chunk)
