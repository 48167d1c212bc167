# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# SOURCE WATCHER - FILESYSTEM CHANGE EVENTS
# -----------------------------------------------------------------------------
# Responsibility: Watch the project tree with watchdog and turn every
# relevant change into exactly one WatchEvent.
#
# Events are not debounced: each filesystem notification that passes the
# watch/ignore filters reaches the callback once, on the observer thread.
# Consumers that live on an event loop must hop threads themselves.
# -----------------------------------------------------------------------------

from collections.abc import Callable, Sequence
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from rich.console import Console
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from beni.domain.models import BuildConfiguration, WatchEvent, WatchEventKind

console = Console()

WatchCallback = Callable[[WatchEvent], None]


class WatchError(Exception):
    """Raised when a path cannot be watched."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class WatchFilter:
    """
    Decides which project-relative paths are interesting.

    A path passes when it matches one of the watch globs and neither one of
    its directory parts is in ignore nor its file name matches ignore_files.
    """

    def __init__(
        self,
        watch: Sequence[str],
        ignore: Sequence[str] = (),
        ignore_files: Sequence[str] = (),
    ) -> None:
        self.watch = list(watch)
        self.ignore = set(ignore)
        self.ignore_files = list(ignore_files)

    @classmethod
    def from_config(cls, config: BuildConfiguration) -> "WatchFilter":
        dev = config.dev_server
        return cls(dev.watch, dev.ignore, dev.ignore_files)

    def matches(self, relative: str) -> bool:
        rel = PurePosixPath(relative)
        if any(part in self.ignore for part in rel.parts[:-1]):
            return False
        if any(fnmatch(rel.name, pattern) for pattern in self.ignore_files):
            return False
        text = rel.as_posix()
        for pattern in self.watch:
            # "src/**/*" must also match files directly inside src/
            if fnmatch(text, pattern) or fnmatch(text, pattern.replace("**/", "")):
                return True
        return False


class _ProjectEventHandler(FileSystemEventHandler):
    """Translates watchdog events into WatchEvents."""

    def __init__(self, root: Path, watch_filter: WatchFilter, callback: WatchCallback) -> None:
        super().__init__()
        self._root = root
        self._filter = watch_filter
        self._callback = callback

    def on_created(self, event: FileSystemEvent) -> None:
        self._dispatch(event.src_path, WatchEventKind.ADDED, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._dispatch(event.src_path, WatchEventKind.CHANGED, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._dispatch(event.src_path, WatchEventKind.REMOVED, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        # A rename is reported as its destination being added
        self._dispatch(event.dest_path, WatchEventKind.ADDED, event.is_directory)

    def _dispatch(self, src_path: str | bytes, kind: WatchEventKind, is_directory: bool) -> None:
        if is_directory:
            return
        if isinstance(src_path, bytes):
            src_path = src_path.decode("utf-8")
        try:
            relative = Path(src_path).resolve().relative_to(self._root).as_posix()
        except ValueError:
            return
        if not self._filter.matches(relative):
            return

        try:
            self._callback(WatchEvent(path=relative, kind=kind))
        except Exception as e:
            console.print(f"[red][WATCH] Change handler failed for {relative}: {e}[/red]")


class SourceWatcher:
    """
    Watches a project root and reports changes through a callback.

    Usage:
        watcher = SourceWatcher(config.root, WatchFilter.from_config(config), on_change)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        root: Path,
        watch_filter: WatchFilter,
        callback: WatchCallback,
        paths: Sequence[Path] | None = None,
    ) -> None:
        """
        Initialize the watcher.

        Args:
            root: Project root; events are reported relative to it.
            watch_filter: Glob filter applied to every event.
            callback: Called once per relevant event (observer thread).
            paths: Directories under root to watch recursively (default: root).
        """
        self.root = root.resolve()
        self._filter = watch_filter
        self._callback = callback
        self._paths = [p.resolve() for p in paths] if paths else [self.root]
        self._observer = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> int:
        """
        Schedule every path and start the observer thread.

        A path that cannot be watched is reported and skipped; the rest keep
        working.

        Returns:
            Number of paths being watched.

        Raises:
            WatchError: If already running or no path could be scheduled.
        """
        if self._observer is not None:
            raise WatchError("Watcher is already running")

        observer = Observer()
        handler = _ProjectEventHandler(self.root, self._filter, self._callback)
        scheduled = 0
        for path in self._paths:
            try:
                if not path.is_dir():
                    raise WatchError(f"Not a directory: {path}", path)
                observer.schedule(handler, str(path), recursive=True)
                scheduled += 1
            except (WatchError, OSError) as e:
                console.print(f"[yellow][WATCH] Cannot watch {path}: {e}[/yellow]")

        if not scheduled:
            raise WatchError("No watchable paths", self.root)

        observer.daemon = True
        observer.start()
        self._observer = observer
        console.print(f"[cyan][WATCH] Watching {scheduled} path(s) under {self.root}[/cyan]")
        return scheduled

    def stop(self) -> None:
        """Stop the observer thread (no-op when not running)."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        console.print("[dim][WATCH] Watcher stopped[/dim]")

    def __enter__(self) -> "SourceWatcher":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
