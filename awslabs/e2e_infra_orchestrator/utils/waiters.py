# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
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

"""Convergence polling helpers.

Every wait in the orchestrator goes through ``wait_for_state``: call a fetch
function once per interval, compare the returned status to a target, give up
after ``timeout_seconds`` iterations. There is no backoff; the interval is
fixed.
"""

import time
from typing import Callable, Dict, Iterable, Optional

from ..consts import DEFAULT_POLL_INTERVAL, sanitize_error_message
from ..errors import ConvergenceError, is_fatal_for_polling
from .logger import get_logger

logger = get_logger(__name__)

StatusFetcher = Callable[[], Optional[str]]


def wait_for_state(
    fetch: StatusFetcher,
    timeout_seconds: int,
    target_status: str,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "resource",
) -> bool:
    """Poll ``fetch`` until it returns ``target_status``.

    Args:
        fetch: Returns the currently observed status string (or None).
        timeout_seconds: Maximum number of poll iterations.
        target_status: Status that ends the wait successfully.
        interval: Seconds slept between iterations.
        sleep: Sleep function, injectable for tests.
        description: Used in log lines only.

    Returns:
        True if the target status was observed, False once the iterations are
        exhausted.

    Raises:
        ConvergenceError: If ``fetch`` fails with an authentication or
            authorization error. Any other fetch error counts as "not yet".
    """
    for attempt in range(timeout_seconds):
        try:
            status = fetch()
        except Exception as e:
            if is_fatal_for_polling(e):
                raise ConvergenceError(
                    f"Polling {description} for '{target_status}' failed: {e}", "wait_for_state"
                ) from e
            logger.debug(f"Polling {description} failed on attempt {attempt + 1}: {sanitize_error_message(str(e))}")
            status = None

        if status == target_status:
            logger.debug(f"{description} reached '{target_status}' after {attempt + 1} poll(s)")
            return True

        logger.debug(f"{description} is '{status}', waiting for '{target_status}'")
        sleep(interval)

    logger.warning(f"Timed out after {timeout_seconds} poll(s) waiting for {description} to reach '{target_status}'")
    return False


def eventually(
    predicate: Callable[[], bool],
    timeout_seconds: int,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition",
) -> bool:
    """Retry a boolean operation until it returns True or the timeout elapses."""
    return wait_for_state(
        lambda: "true" if predicate() else "false",
        timeout_seconds,
        "true",
        interval=interval,
        sleep=sleep,
        description=description,
    )


def fleet_state(states: Iterable[str], target_state: str) -> bool:
    """True when every listed state is the target, or nothing is listed."""
    counts: Dict[str, int] = {}
    total = 0
    for state in states:
        counts[state] = counts.get(state, 0) + 1
        total += 1
    return total == 0 or counts.get(target_state, 0) == total


def wait_for_instance_state(
    list_states: Callable[[], Iterable[str]],
    timeout_seconds: int,
    target_state: str,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Wait until every instance returned by ``list_states`` is in ``target_state``.

    An empty fleet counts as converged.
    """
    return wait_for_state(
        lambda: target_state if fleet_state(list_states(), target_state) else None,
        timeout_seconds,
        target_state,
        interval=interval,
        sleep=sleep,
        description="instance fleet",
    )
