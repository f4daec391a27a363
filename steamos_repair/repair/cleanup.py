"""Exit guard: release handles for every resource acquired during a run.

Each acquisition (a mount, a filesystem freeze) registers a cleanup with the
guard and gets a CleanupHandle back. The happy path may release a handle
early; the guard drains whatever is still outstanding, in registration order,
on any exit path. Releasing a handle twice is a no-op.

Usage:
    with ExitGuard() as guard:
        handle = guard.register("unfreeze /", lambda: thaw_filesystem("/"))
        ...
        handle.release()  # optional, the guard will do it otherwise
"""

from __future__ import annotations

from typing import Callable, List

from steamos_repair.logging import LoggerFactory


log = LoggerFactory.for_system()


class CleanupHandle:
    """A registered cleanup that runs at most once."""

    def __init__(self, name: str, action: Callable[[], None]):
        self.name = name
        self._action = action
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Run the cleanup unless it already ran.

        Marked released before running, so a failing cleanup is not retried.
        Exceptions propagate to the caller.
        """
        if self._released:
            return
        self._released = True
        log.debug(f"Releasing {self.name}")
        self._action()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"CleanupHandle({self.name!r}, {state})"


class ExitGuard:
    """Append-only, ordered registry of cleanups drained exactly once."""

    def __init__(self) -> None:
        self._handles: List[CleanupHandle] = []
        self._drained = False

    @property
    def handles(self) -> List[CleanupHandle]:
        return list(self._handles)

    @property
    def outstanding(self) -> List[CleanupHandle]:
        return [handle for handle in self._handles if not handle.released]

    def register(self, name: str, action: Callable[[], None]) -> CleanupHandle:
        handle = CleanupHandle(name, action)
        self._handles.append(handle)
        log.debug(f"Registered cleanup {name}")
        return handle

    def drain(self) -> None:
        """Release every outstanding handle; one failure does not stop the rest."""
        if self._drained:
            return
        self._drained = True
        for handle in self._handles:
            if handle.released:
                continue
            try:
                handle.release()
            except Exception as error:
                log.warning(f"Cleanup {handle.name} failed: {error}")

    def __enter__(self) -> ExitGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.drain()
