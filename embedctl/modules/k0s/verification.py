"""k0s readiness checks.

Readiness is two steps: the k0s status socket has to show up on disk, then
``k0s status`` has to succeed. The socket is polled on a fixed interval
and the wait stops early when the caller sets the cancellation event.
"""

import logging
import os
import threading
from typing import Optional

from rich.console import Console
from tenacity import Retrying, retry_if_result, stop_after_attempt, stop_when_event_set, wait_fixed

from embedctl.config import Config
from .errors import Cancelled, ReadinessTimeout
from .service import k0s_status

logger = logging.getLogger("embedctl.k0s.verification")

console = Console(stderr=True)


def wait_for_file(
    path: str,
    cancel: threading.Event,
    attempts: int,
    interval: float,
) -> None:
    """Poll for ``path`` until it exists.

    Args:
        path: File to wait for
        cancel: Event that aborts the wait when set
        attempts: Maximum number of checks
        interval: Seconds between two checks

    Raises:
        Cancelled: If ``cancel`` was set before the file appeared
        ReadinessTimeout: If the file did not appear after ``attempts`` checks
    """
    if cancel.is_set():
        raise Cancelled(f"cancelled while waiting for {path}")

    def check() -> bool:
        found = os.path.exists(path)
        if not found:
            logger.debug(f"{path} not there yet")
        return found

    retrying = Retrying(
        stop=stop_after_attempt(attempts) | stop_when_event_set(cancel),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda found: not found),
        # an event wait returns as soon as the run is cancelled
        sleep=cancel.wait,
        retry_error_callback=lambda state: state.outcome.result(),
    )
    if retrying(check):
        return
    if cancel.is_set():
        raise Cancelled(f"cancelled while waiting for {path}")
    raise ReadinessTimeout(str(path), attempts, interval)


def wait_for_k0s(
    cancel: Optional[threading.Event] = None,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
) -> str:
    """Block until the local k0s node reports healthy.

    Args:
        cancel: Cancellation event; a fresh one is used when omitted
        attempts: Socket checks before giving up (default ``Config.READY_MAX_ATTEMPTS``)
        interval: Seconds between checks (default ``Config.READY_POLL_INTERVAL``)

    Returns:
        str: Output of ``k0s status``

    Raises:
        Cancelled: If the wait was cancelled
        ReadinessTimeout: If the status socket never appeared
        CommandError: If ``k0s status`` fails once the socket exists
    """
    cancel = cancel or threading.Event()
    attempts = attempts or Config.READY_MAX_ATTEMPTS
    interval = interval if interval is not None else Config.READY_POLL_INTERVAL

    logger.info("⏳ Waiting for k0s to be ready")
    with console.status("Waiting for k0s to be ready"):
        wait_for_file(str(Config.K0S_STATUS_SOCKET), cancel, attempts, interval)
        status = k0s_status()
    logger.info("✅ Node installation finished")
    return status
