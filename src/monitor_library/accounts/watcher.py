# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Registry file watcher.

Pipeline:
    watchdog event (observer thread)
        -> notify()            thread-safe raw signal into the event loop
        -> debounce            quiet period, reset on every new signal
        -> settled event       processed one at a time by a single task
        -> load + callback     exactly once per settled change

The parent directory is watched rather than the file itself so that
editors that replace the file (write temp + rename) and deletion or
re-creation of the file are all observed.
"""

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.constants import DEFAULT_DEBOUNCE_SECONDS
from ..core.errors import RegistryParseError
from ..core.types import RawRegistry
from .registry import load_registry

lib_logger = logging.getLogger("monitor_library")

RegistryCallback = Callable[[Optional[RawRegistry]], Union[Awaitable[Any], Any]]


class _RegistryEventHandler(FileSystemEventHandler):
    """Forwards events that touch the registry path to the watcher."""

    def __init__(self, watcher: "RegistryWatcher"):
        super().__init__()
        self._watcher = watcher

    def _touches_registry(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        target = self._watcher.path
        for attr in ("src_path", "dest_path"):
            raw = getattr(event, attr, None)
            if not raw:
                continue
            if isinstance(raw, bytes):
                raw = raw.decode(errors="replace")
            if Path(raw).resolve() == target:
                return True
        return False

    def on_any_event(self, event: FileSystemEvent) -> None:
        if self._touches_registry(event):
            self._watcher.notify()


class RegistryWatcher:
    """
    Observes the account registry and reports settled changes.

    The callback receives the parsed RawRegistry, or None when the file
    is missing. Malformed content is logged and the callback is not
    invoked, so the caller's last known-good state stays in place.

    Example:
        watcher = RegistryWatcher(path, store.reconcile, debounce_seconds=0.1)
        await watcher.load_now()
        await watcher.start()
    """

    def __init__(
        self,
        path: Union[str, Path],
        on_change: RegistryCallback,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.path = Path(path).expanduser().resolve()
        self._on_change = on_change
        self._debounce = debounce_seconds
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._signal = asyncio.Event()
        self._load_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._observer: Optional[Any] = None
        self.settled_count = 0

    # =========================================================================
    # LOADING
    # =========================================================================

    async def _deliver(self, registry: Optional[RawRegistry]) -> None:
        result = self._on_change(registry)
        if inspect.isawaitable(result):
            await result

    async def load_now(self) -> bool:
        """
        Load the registry immediately and invoke the callback.

        Returns:
            False if the content was malformed and the callback was skipped
        """
        # Read and delivery happen under one lock so a later read is never
        # delivered before an earlier one
        async with self._load_lock:
            try:
                registry = await asyncio.to_thread(load_registry, self.path)
            except RegistryParseError as e:
                lib_logger.error(f"{e} - keeping previous account state")
                return False

            if registry is None:
                lib_logger.warning(f"Account registry not found: {self.path}")
            await self._deliver(registry)
            return True

    # =========================================================================
    # DEBOUNCE
    # =========================================================================

    def notify(self) -> None:
        """Raw change signal. Safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._signal.set)
        except RuntimeError:
            # Loop shut down between the check and the call
            pass

    async def _wait_settled(self) -> None:
        await self._signal.wait()
        while True:
            self._signal.clear()
            try:
                await asyncio.wait_for(self._signal.wait(), timeout=self._debounce)
            except asyncio.TimeoutError:
                return  # quiet period elapsed with no new signal

    async def _run(self) -> None:
        while True:
            await self._wait_settled()
            self.settled_count += 1
            lib_logger.debug(f"Account registry changed, reloading {self.path}")
            try:
                await self.load_now()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                lib_logger.error(
                    f"Registry change handling failed: {type(e).__name__}: {e}"
                )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _start_observer(self) -> None:
        directory = self.path.parent
        if not directory.is_dir():
            lib_logger.warning(
                f"Registry directory {directory} does not exist; "
                "changes will not be watched"
            )
            return
        observer = Observer()
        observer.schedule(_RegistryEventHandler(self), str(directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        lib_logger.info(f"Watching account registry {self.path}")
        # Writes that landed before the observer attached produced no event
        self.notify()

    async def start(self, watch_filesystem: bool = True) -> None:
        """
        Start processing change signals.

        Args:
            watch_filesystem: Attach a watchdog observer. When False, only
                explicit notify() calls trigger reloads.
        """
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._run())
        if watch_filesystem:
            self._start_observer()

    async def stop(self) -> None:
        if self._observer is not None:
            observer = self._observer
            self._observer = None
            observer.stop()
            await asyncio.to_thread(observer.join, 2.0)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._loop = None
