"""Signal primitive for PID-based termination."""

from __future__ import annotations

import logging
import os
import signal

logger = logging.getLogger(__name__)


class Signaller:
    """Graceful and forceful termination by pid."""

    def alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _send(self, pid: int, signum: int) -> bool:
        try:
            os.kill(pid, signum)
        except (ProcessLookupError, PermissionError) as exc:
            logger.debug("Failed to signal process", extra={"pid": pid, "signal": signum, "error": str(exc)})
            return False
        return True

    def terminate(self, pid: int) -> bool:
        return self._send(pid, signal.SIGTERM)

    def kill(self, pid: int) -> bool:
        return self._send(pid, signal.SIGKILL)


__all__ = ["Signaller"]
