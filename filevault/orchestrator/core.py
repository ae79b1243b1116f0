"""Core orchestrator - tracks concurrent uploads from submission to eviction."""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set

from ..errors import FileVaultError, TransferCancelledError
from ..models import ClientConfig, FileReference, UploadProgress, UploadSource, UploadState
from ..protocols import DuplicateResolver, IFileRepository, ITransferEngine
from ..use_cases.duplicates import ResolveDuplicateUseCase
from ..use_cases.upload_checks import ValidateUploadUseCase, classify_upload_error
from ..utils.events import EventEmitter
from .models import UploadTask, new_task_id

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Runs any number of uploads at once and keeps one UploadTask per upload.

    Every state change happens in a plain (non-async) method, so it cannot
    interleave with another one on the event loop. A task leaves UPLOADING
    exactly once; later completions or cancels are ignored.

    Usage:
        async with UploadOrchestrator(engine, repository) as uploads:
            uploads.on("task_finished", lambda task: print(task.name, task.state))
            task = await uploads.submit(UploadSource.from_path(path))
            await uploads.wait(task.id)

    Events (callback receives the UploadTask):
        task_added, task_progress, task_finished, task_removed
    """

    def __init__(
        self,
        transfer: ITransferEngine,
        repository: IFileRepository,
        config: Optional[ClientConfig] = None,
        duplicate_resolver: Optional[DuplicateResolver] = None,
        events: Optional[EventEmitter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            transfer: Engine that performs single uploads
            repository: File listing/deletion for duplicate handling
            config: Size ceiling, sweep timing, duplicate scan size
            duplicate_resolver: Default callback asked on a name collision
            events: Emitter for task events (one is created if omitted)
            clock: Monotonic time source used for eviction
        """
        self._config = config or ClientConfig()
        self._transfer = transfer
        self._duplicate_resolver = duplicate_resolver
        self._events = events or EventEmitter()
        self._clock = clock

        self._validate = ValidateUploadUseCase(self._config.max_upload_bytes)
        self._duplicates = ResolveDuplicateUseCase(
            repository,
            scan_size=self._config.duplicate_scan_size,
            max_rename_attempts=self._config.max_rename_attempts,
        )

        self._tasks: List[UploadTask] = []
        self._runners: Dict[str, asyncio.Task] = {}
        self._sweeper: Optional[asyncio.Task] = None

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *args):
        await self.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> List[UploadTask]:
        """Tracked tasks, most recent first."""
        return list(self._tasks)

    @property
    def active_tasks(self) -> List[UploadTask]:
        return [t for t in self._tasks if t.is_active]

    def get_task(self, task_id: str) -> Optional[UploadTask]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def on(self, event_name: str, callback: Callable):
        """Subscribe to a task event."""
        self._events.on(event_name, callback)

    def off(self, event_name: str, callback: Callable):
        self._events.off(event_name, callback)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        source: UploadSource,
        on_duplicate: Optional[DuplicateResolver] = None,
        check_duplicates: bool = True,
    ) -> Optional[UploadTask]:
        """
        Validate, resolve name collisions, then start the upload.

        Returns the new task, or None if the duplicate prompt was cancelled.

        Raises:
            ValidationError: Empty or oversized file, or no free keep-both name
            DuplicateFileError: Name taken and no resolver to ask
        """
        self._validate.execute(source)

        if check_duplicates:
            resolved = await self._duplicates.execute(source, on_duplicate or self._duplicate_resolver)
            if resolved is None:
                logger.info("Upload of %s cancelled at duplicate prompt", source.name)
                return None
            source = resolved

        task = UploadTask(source=source, last_transition=self._clock())
        while self.get_task(task.id) is not None:
            task.id = new_task_id()

        task.handle = self._transfer.begin_upload(
            source,
            on_progress=lambda progress: self._on_transfer_progress(task.id, progress),
        )
        self._tasks.insert(0, task)
        logger.info("Upload %s started for %s", task.id, source.name)
        self._events.emit_nowait("task_added", task)

        runner = asyncio.create_task(self._run(task))
        self._runners[task.id] = runner
        runner.add_done_callback(lambda _: self._runners.pop(task.id, None))
        return task

    async def _run(self, task: UploadTask) -> None:
        try:
            file_ref = await task.handle.result()
        except TransferCancelledError:
            self._finish(task, UploadState.CANCELLED)
        except asyncio.CancelledError:
            self._finish(task, UploadState.CANCELLED)
            raise
        except FileVaultError as e:
            self._fail(task, e.message)
        except Exception as e:
            logger.exception("Upload %s failed unexpectedly", task.id)
            self._fail(task, str(e))
        else:
            self._succeed(task, file_ref)

    def _on_transfer_progress(self, task_id: str, progress: UploadProgress) -> None:
        if progress.percent is not None:
            self.update_progress(task_id, progress.percent)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_progress(self, task_id: str, percent: float) -> bool:
        """
        Raise the task's progress. Lower values and terminal tasks are ignored.
        """
        task = self.get_task(task_id)
        if task is None or not task.is_active:
            return False
        percent = max(0.0, min(100.0, float(percent)))
        if percent <= task.progress:
            return False
        task.progress = percent
        self._events.emit_nowait("task_progress", task)
        return True

    def _finish(self, task: UploadTask, state: UploadState, **changes) -> bool:
        if not task.is_active:
            return False
        task.state = state
        for key, value in changes.items():
            setattr(task, key, value)
        task.last_transition = self._clock()
        logger.info("Upload %s (%s) -> %s", task.id, task.name, state.value)
        self._events.emit_nowait("task_finished", task)
        return True

    def _succeed(self, task: UploadTask, file_ref: FileReference) -> bool:
        return self._finish(task, UploadState.SUCCESS, progress=100.0, result=file_ref)

    def _fail(self, task: UploadTask, message: str) -> bool:
        kind = classify_upload_error(message)
        if task.is_active:
            logger.warning("Upload %s (%s) failed [%s]: %s", task.id, task.name, kind.value, message)
        return self._finish(task, UploadState.ERROR, error_kind=kind, error_message=message)

    def cancel(self, task_id: str) -> bool:
        """
        Cancel an active upload. The task is CANCELLED on return.

        Returns False for unknown or already finished tasks.
        """
        task = self.get_task(task_id)
        if task is None or not self._finish(task, UploadState.CANCELLED):
            return False
        if task.handle is not None:
            task.handle.cancel()
        return True

    def remove_task(self, task_id: str) -> bool:
        """Drop a task from the list. An active one is cancelled first."""
        task = self.get_task(task_id)
        if task is None:
            return False
        if task.is_active:
            self.cancel(task_id)
        self._tasks.remove(task)
        self._events.emit_nowait("task_removed", task)
        return True

    def clear_completed(self) -> int:
        """Remove every finished task, pinned or not."""
        finished = [t for t in self._tasks if not t.is_active]
        for task in finished:
            self.remove_task(task.id)
        return len(finished)

    def pin(self, task_id: str) -> bool:
        """Keep a finished task visible past the eviction time."""
        return self._set_pinned(task_id, True)

    def unpin(self, task_id: str) -> bool:
        return self._set_pinned(task_id, False)

    def _set_pinned(self, task_id: str, pinned: bool) -> bool:
        task = self.get_task(task_id)
        if task is None:
            return False
        task.pinned = pinned
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict finished, unpinned tasks older than the configured TTL.

        Active tasks are never evicted.
        """
        now = self._clock() if now is None else now
        ttl = self._config.task_ttl
        expired = [
            t for t in self._tasks
            if not t.is_active and not t.pinned and now - t.last_transition >= ttl
        ]
        for task in expired:
            self.remove_task(task.id)
        if expired:
            logger.debug("Swept %d finished uploads", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweeper."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            self.sweep()

    async def close(self) -> None:
        """Stop the sweeper and cancel uploads still running."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        for task in self.active_tasks:
            self.cancel(task.id)
        for runner in list(self._runners.values()):
            runner.cancel()
        await self.wait_all()

    async def wait(self, task_id: str) -> Optional[UploadTask]:
        """Wait until the task's transfer has settled and return the task."""
        runner = self._runners.get(task_id)
        if runner is not None:
            await asyncio.gather(runner, return_exceptions=True)
        await self._events.drain()
        return self.get_task(task_id)

    async def wait_all(self) -> List[UploadTask]:
        """Wait for every running transfer to settle."""
        runners: Set[asyncio.Task] = set(self._runners.values())
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        await self._events.drain()
        return self.tasks

    def summary(self) -> Dict[str, int]:
        """Task count per state."""
        counts = {state.value: 0 for state in UploadState}
        for task in self._tasks:
            counts[task.state.value] += 1
        return counts

