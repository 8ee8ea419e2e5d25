"""Time-derived version tags: ``v<unix-seconds>``."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class VersionClock:
    """Issues ``v<unix-seconds>`` version tags.

    Tags are keyed on wall-clock seconds.  With ``strictly_increasing``
    (the default) a tag requested within the same second as the previous
    one, or after the wall clock stepped backwards, is bumped to one second
    past the last issued tag, so one process never issues the same tag
    twice.  With ``strictly_increasing=False`` tags are plain wall-clock
    seconds and two pushes in the same second share a tag; the later push
    wins that tag.

    Parameters
    ----------
    clock:
        Wall-clock source returning seconds since the epoch.
    strictly_increasing:
        Whether to bump colliding tags.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        *,
        strictly_increasing: bool = True,
    ) -> None:
        self._clock = clock
        self._strict = strictly_increasing
        self._last = 0
        self._lock = threading.Lock()

    def next_tag(self) -> str:
        now = int(self._clock())
        if not self._strict:
            return f"v{now}"
        with self._lock:
            issued = now if now > self._last else self._last + 1
            self._last = issued
        return f"v{issued}"


def parse_version_tag(tag: str) -> int | None:
    """Return the timestamp encoded in a ``v<unix-seconds>`` tag, else None."""
    if len(tag) > 1 and tag[0] == "v" and tag[1:].isdigit():
        return int(tag[1:])
    return None
