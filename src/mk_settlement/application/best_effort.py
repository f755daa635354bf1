"""BestEffortRunner — bounded, logged execution of non-critical steps.

A step either finishes within its timeout or is cancelled; either way its
TaskOutcome is recorded and logged. Nothing a step raises reaches the caller.
"""

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskOutcome:
    name: str
    ok: bool
    error: str | None = None
    value: Any = None


class BestEffortRunner:
    def __init__(self, timeout_seconds: float = 1.5) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._timeout = timeout_seconds

    async def run(self, name: str, step: Awaitable[Any]) -> TaskOutcome:
        try:
            value = await asyncio.wait_for(step, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Best-effort step %s timed out after %.2fs", name, self._timeout)
            return TaskOutcome(name=name, ok=False, error="timeout")
        except Exception as exc:
            logger.warning("Best-effort step %s failed: %s", name, exc)
            return TaskOutcome(name=name, ok=False, error=str(exc) or type(exc).__name__)
        logger.debug("Best-effort step %s ok", name)
        return TaskOutcome(name=name, ok=True, value=value)

    async def run_all(self, steps: dict[str, Awaitable[Any]]) -> list[TaskOutcome]:
        """Run independent steps concurrently; outcomes keep the input order."""
        if not steps:
            return []
        return list(
            await asyncio.gather(*(self.run(name, step) for name, step in steps.items()))
        )
