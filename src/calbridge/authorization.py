from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Callable

from calbridge.calendar.store import AccessCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: str | None = None


class AuthorizationGate:
    """Turn a callback-based access request into one blocking call.

    `ensure_access` does not return until the store's completion callback
    has fired, which may take as long as the user needs to answer a
    permission prompt. With `timeout` set, an unanswered request is
    reported as a denial once the timeout elapses.
    """

    def __init__(
        self,
        request_access: Callable[[AccessCallback], None],
        *,
        is_authorized: Callable[[], bool] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._request_access = request_access
        self._is_authorized = is_authorized
        self._timeout = timeout
        self._granted = False

    def ensure_access(self) -> AccessDecision:
        if self._granted:
            return AccessDecision(granted=True)
        if self._is_authorized is not None and self._is_authorized():
            logger.debug("Calendar access already authorized")
            self._granted = True
            return AccessDecision(granted=True)

        done = threading.Event()
        guard = threading.Lock()
        result: dict[str, object] = {"granted": False, "reason": None}

        def _completion(granted: bool, reason: str | None = None) -> None:
            with guard:
                if done.is_set():
                    logger.debug("Ignoring repeated access callback")
                    return
                result["granted"] = bool(granted)
                result["reason"] = reason
                done.set()

        logger.debug("Requesting calendar access")
        self._request_access(_completion)
        if not done.wait(timeout=self._timeout):
            logger.warning("Calendar access request timed out after %ss", self._timeout)
            return AccessDecision(
                granted=False,
                reason=f"timed out after {self._timeout:g}s waiting for authorization",
            )

        if not result["granted"]:
            reason = result["reason"]
            return AccessDecision(granted=False, reason=str(reason) if reason else "user denied")
        self._granted = True
        return AccessDecision(granted=True)
