"""
File system services used by the preprocessor.

Paths may contain ${TOKEN} placeholders that expand to registered
directories, which is how angle-bracket includes such as
<${SHADERS}/lighting.glsl> are rooted. Change tracking is built on watchdog:
every watched directory gets one observer watch, and every tracked file in
it registers its callbacks with that directory's handler.
"""

import logging
import os
import re
import threading
from typing import Callable, Dict, List, Optional, TextIO

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\$\{([^}]+)\}")
MAX_TOKEN_DEPTH = 16

ChangeCallback = Callable[[str], None]


class _DirectoryHandler(FileSystemEventHandler):
    """Dispatches watchdog events in one directory to per-file callbacks."""

    def __init__(self, directory: str):
        self.directory = directory
        self.callbacks: Dict[str, List[ChangeCallback]] = {}
        self.watch = None
        self.lock = threading.Lock()

    def _notify(self, path: str):
        path_abs = os.path.abspath(path)
        with self.lock:
            callbacks = list(self.callbacks.get(path_abs, ()))
        for callback in callbacks:
            callback(path_abs)

    def on_modified(self, event):
        if event.is_directory:
            return
        self._notify(event.src_path)

    def on_created(self, event):
        if event.is_directory:
            return
        self._notify(event.src_path)

    def on_moved(self, event):
        # Editors that save through a temporary file end with a move onto the target
        if event.is_directory:
            return
        self._notify(event.dest_path)


class TrackedFile:
    """Registration of one change callback for one path."""

    def __init__(self, file_system: 'FileSystem', path: str, callback: ChangeCallback):
        self.file_system = file_system
        self.path = path
        self.callback = callback
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.file_system._unwatch(self)

    def __repr__(self) -> str:
        return f"TrackedFile({self.path!r})"


class FileSystem:
    """Path resolution, file access and change tracking."""

    PATH_SEPARATOR = os.sep

    def __init__(self, observer_factory: Optional[Callable[[], Observer]] = None):
        self._tokens: Dict[str, str] = {}
        self._observer_factory = observer_factory or Observer
        self._observer = None
        self._handlers: Dict[str, _DirectoryHandler] = {}
        self._lock = threading.Lock()

    # --- Paths ---

    def register_path_token(self, token: str, path: str, override: bool = False) -> None:
        """Makes ${token} expand to path in every path given to abs_path."""
        if token in self._tokens and not override:
            raise KeyError(f"Path token '{token}' is already registered")
        self._tokens[token] = path

    def has_path_token(self, token: str) -> bool:
        return token in self._tokens

    def expand_path_tokens(self, path: str) -> str:
        def replace(match):
            token = match.group(1)
            if token not in self._tokens:
                raise KeyError(f"Unknown path token '{token}' in '{path}'")
            return self._tokens[token]

        # Token values may themselves contain tokens
        expanded = path
        for _ in range(MAX_TOKEN_DEPTH):
            if not TOKEN_PATTERN.search(expanded):
                return expanded
            expanded = TOKEN_PATTERN.sub(replace, expanded)
        raise ValueError(f"Path tokens in '{path}' are nested too deeply")

    def abs_path(self, path: str) -> str:
        expanded = os.path.expanduser(self.expand_path_tokens(path))
        return os.path.normpath(os.path.abspath(expanded))

    def normalize(self, path: str) -> str:
        return os.path.normpath(path)

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def is_directory(self, path: str) -> bool:
        return os.path.isdir(path)

    def open(self, path: str) -> TextIO:
        return open(path, 'r', encoding='utf-8-sig')

    def directory_of(self, path: str) -> str:
        return os.path.dirname(path)

    def filename_of(self, path: str) -> str:
        return os.path.basename(path)

    # --- Change tracking ---

    def watch(self, path: str, callback: ChangeCallback) -> TrackedFile:
        """
        Calls callback(path) from the observer thread whenever path changes.

        The returned TrackedFile must be released to stop tracking. If the
        directory of path does not exist, a warning is logged and the
        returned handle never fires.
        """
        path = os.path.abspath(path)
        tracked = TrackedFile(self, path, callback)
        directory = os.path.dirname(path)
        if not os.path.isdir(directory):
            logger.warning("Directory '%s' does not exist. Cannot watch '%s'.", directory, path)
            return tracked

        with self._lock:
            handler = self._handlers.get(directory)
            if handler is None:
                if self._observer is None:
                    self._observer = self._observer_factory()
                    self._observer.start()
                handler = _DirectoryHandler(directory)
                handler.watch = self._observer.schedule(handler, directory, recursive=False)
                self._handlers[directory] = handler
                logger.debug("Scheduled watcher for directory: %s", directory)
            with handler.lock:
                handler.callbacks.setdefault(path, []).append(callback)
        return tracked

    def _unwatch(self, tracked: TrackedFile) -> None:
        directory = os.path.dirname(tracked.path)
        with self._lock:
            handler = self._handlers.get(directory)
            if handler is None:
                return
            with handler.lock:
                callbacks = handler.callbacks.get(tracked.path, [])
                if tracked.callback in callbacks:
                    callbacks.remove(tracked.callback)
                if not callbacks:
                    handler.callbacks.pop(tracked.path, None)
                remaining = bool(handler.callbacks)
            if not remaining:
                self._observer.unschedule(handler.watch)
                del self._handlers[directory]
                logger.debug("Unscheduled watcher for directory: %s", directory)

    def watched_directories(self) -> List[str]:
        with self._lock:
            return list(self._handlers.keys())

    def close(self) -> None:
        """Stops the observer thread. Existing TrackedFile handles stop firing."""
        with self._lock:
            observer = self._observer
            self._observer = None
            self._handlers = {}
        if observer is not None:
            if observer.is_alive():
                observer.stop()
            observer.join()
