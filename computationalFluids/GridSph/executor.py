# -- Stage Executor -- #

'''
Data-parallel fan-out of one pipeline stage over a thread pool.

A stage is a kernel callable `kernel(start, stop)` that handles the
work items [start, stop) and writes only the output slots owned by
those items. The executor splits [0, nItems) into disjoint chunks,
runs them on a ThreadPoolExecutor and waits for every chunk before
returning, which is the barrier between stages. NumPy releases the
GIL inside its array loops, so chunks do overlap in practice.

If any chunk raises, the whole stage is abandoned: the executor
still waits for the remaining chunks, then re-raises the first
exception in chunk order.
'''

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import ConfigurationError


StageKernel = Callable[[int, int], None]


class StageExecutor:
    '''
    Runs stage kernels over disjoint index chunks with a barrier.

    Parameters:
    -----------
    workerCount : int
        Worker threads; 1 runs every chunk inline on the caller
    chunkSize : int
        Work items per chunk
    '''

    def __init__(
        self,
        workerCount: int = const.defaultWorkerCount,
        chunkSize: int = const.defaultChunkSize,
    ) -> None:
        if workerCount < 1:
            raise ConfigurationError(f'workerCount must be >= 1, got {workerCount}')
        if chunkSize < 1:
            raise ConfigurationError(f'chunkSize must be >= 1, got {chunkSize}')

        self._workerCount = workerCount
        self._chunkSize = chunkSize
        self._pool: ThreadPoolExecutor | None = None
        if workerCount > 1:
            self._pool = ThreadPoolExecutor(
                max_workers=workerCount,
                thread_name_prefix='gridSphStage',
            )

    @property
    def workerCount(self) -> int:
        '''Number of worker threads.'''
        return self._workerCount

    @property
    def chunkSize(self) -> int:
        '''Work items per chunk.'''
        return self._chunkSize

    def chunks(self, nItems: int) -> list[tuple[int, int]]:
        '''Disjoint [start, stop) ranges covering [0, nItems).'''
        return [
            (start, min(start + self._chunkSize, nItems))
            for start in range(0, nItems, self._chunkSize)
        ]

    def run(self, kernel: StageKernel, nItems: int) -> None:
        '''
        Run a kernel over [0, nItems) and wait for all chunks.

        Parameters:
        -----------
        kernel : StageKernel
            Callable handling one [start, stop) chunk
        nItems : int
            Number of work items in the stage
        '''
        ranges = self.chunks(nItems)
        if self._pool is None or len(ranges) <= 1:
            for start, stop in ranges:
                kernel(start, stop)
            return

        futures = [self._pool.submit(kernel, start, stop) for start, stop in ranges]
        wait(futures)

        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def shutdown(self) -> None:
        '''Stop the worker threads.'''
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> StageExecutor:
        return self

    def __exit__(self, *excInfo) -> None:
        self.shutdown()
