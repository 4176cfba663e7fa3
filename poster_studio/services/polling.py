"""Resolution-aware polling of a provider task until it reaches a terminal state."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from poster_studio.config import PollingConfig, ResolutionSchedule
from poster_studio.errors import (
    ErrorKind,
    PollingExhausted,
    PollingTimedOut,
    ProviderTaskFailed,
    classify_provider_failure,
)
from poster_studio.services.kie_client import ProviderResponseError, TaskState, TaskStatus

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


class TaskStatusSource(Protocol):
    async def get_task(self, task_id: str) -> TaskStatus:
        ...


@dataclass
class PollResult:
    task_id: str
    image_url: str
    result_urls: List[str]
    attempts: int
    elapsed: float


def interval_for_attempt(attempt: int, schedule: ResolutionSchedule, config: PollingConfig) -> float:
    """Wait before poll number ``attempt`` (1-based): a linear ramp, then the steady interval."""

    if attempt <= config.ramp_attempts:
        ramped = config.ramp_start + (attempt - 1) * config.ramp_step
        return min(ramped, config.ramp_cap, schedule.interval)
    return schedule.interval


def interval_schedule(resolution: str, config: PollingConfig) -> List[float]:
    schedule = config.schedule_for(resolution)
    return [
        interval_for_attempt(attempt, schedule, config)
        for attempt in range(1, schedule.max_attempts + 1)
    ]


def error_backoff(base: float, consecutive_errors: int, config: PollingConfig) -> float:
    return min(max(base, config.ramp_start) * (2 ** consecutive_errors), config.error_backoff_cap)


async def poll_until_complete(
    client: TaskStatusSource,
    task_id: str,
    resolution: str,
    config: PollingConfig,
    *,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    trace: Optional[str] = None,
) -> PollResult:
    """Poll ``task_id`` until success, fatal failure, or the attempt ceiling.

    Network errors and non-2xx lookups are tolerated up to
    ``config.max_consecutive_errors`` in a row, with a doubling backoff.
    Failures the provider reports as transient keep the loop going.
    """

    schedule = config.schedule_for(resolution)
    started = clock()
    consecutive_errors = 0
    log_extra = {"trace": trace, "task_id": task_id, "resolution": resolution}

    for attempt in range(1, schedule.max_attempts + 1):
        wait = interval_for_attempt(attempt, schedule, config)
        if consecutive_errors:
            wait = error_backoff(wait, consecutive_errors, config)
        await sleep(wait)

        try:
            status = await client.get_task(task_id)
        except ProviderResponseError as exc:
            consecutive_errors += 1
            logger.warning(
                "poll attempt failed",
                extra={**log_extra, "attempt": attempt, "consecutive_errors": consecutive_errors, "error": exc.message},
            )
            if consecutive_errors > config.max_consecutive_errors:
                raise PollingExhausted(
                    f"status lookup failed {consecutive_errors} times in a row",
                    detail={
                        "task_id": task_id,
                        "attempts": attempt,
                        "last_status": exc.status_code,
                        "elapsed_seconds": round(clock() - started, 3),
                    },
                ) from exc
            continue

        consecutive_errors = 0
        if status.state is TaskState.SUCCEEDED:
            elapsed = clock() - started
            if not status.image_url:
                raise ProviderTaskFailed(
                    "provider reported success without an image URL",
                    detail={"task_id": task_id, "attempts": attempt},
                )
            logger.info(
                "provider task succeeded",
                extra={**log_extra, "attempt": attempt, "elapsed": round(elapsed, 3)},
            )
            return PollResult(
                task_id=task_id,
                image_url=status.image_url,
                result_urls=list(status.result_urls),
                attempts=attempt,
                elapsed=elapsed,
            )

        if status.state is TaskState.FAILED:
            kind = classify_provider_failure(status.fail_code, status.fail_msg)
            if kind is ErrorKind.PROVIDER_TRANSIENT_FAILURE:
                logger.info(
                    "transient provider failure, still polling",
                    extra={**log_extra, "attempt": attempt, "fail_code": status.fail_code, "fail_msg": status.fail_msg},
                )
                continue
            raise ProviderTaskFailed(
                f"generation failed: {status.fail_msg or status.fail_code or 'unknown error'}",
                detail={"task_id": task_id, "fail_code": status.fail_code, "fail_msg": status.fail_msg},
            )

        logger.debug("provider task pending", extra={**log_extra, "attempt": attempt})

    elapsed = clock() - started
    raise PollingTimedOut(
        f"task {task_id} did not finish after {schedule.max_attempts} polls ({elapsed:.1f}s)",
        detail={
            "task_id": task_id,
            "attempts": schedule.max_attempts,
            "elapsed_seconds": round(elapsed, 3),
        },
    )


__all__ = [
    "PollResult",
    "TaskStatusSource",
    "error_backoff",
    "interval_for_attempt",
    "interval_schedule",
    "poll_until_complete",
]
