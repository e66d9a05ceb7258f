"""Cancellable polling for payment confirmation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger

from spritepay_api.core.settings import settings

ConfirmationCheck = Callable[[], Awaitable[bool]]


class PollOutcome(str, Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    outcome: PollOutcome
    attempts: int


class PaymentConfirmationPoller:
    """Repeats a confirmation check until it succeeds, is stopped, or runs out of attempts."""

    def __init__(
        self,
        check: ConfirmationCheck,
        *,
        interval_seconds: float | None = None,
        max_attempts: int | None = None,
        label: str = "payment",
    ) -> None:
        self._check = check
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.payment_poll_interval_seconds
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.payment_poll_max_attempts
        self._label = label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[PollResult] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[PollResult]:
        if self._task and not self._task.done():
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> PollResult | None:
        if not self._task:
            return None
        self._stop_event.set()
        result = await self._task
        self._task = None
        return result

    async def run(self) -> PollResult:
        attempts = 0
        while attempts < self.max_attempts:
            if self._stop_event.is_set():
                return self._done(PollOutcome.CANCELLED, attempts)
            attempts += 1
            try:
                confirmed = await self._check()
            except Exception as exc:
                logger.warning(
                    "Payment confirmation check failed",
                    label=self._label,
                    attempt=attempts,
                    error=str(exc),
                )
                confirmed = False
            if confirmed:
                return self._done(PollOutcome.CONFIRMED, attempts)
            if attempts >= self.max_attempts:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
            return self._done(PollOutcome.CANCELLED, attempts)
        return self._done(PollOutcome.TIMED_OUT, attempts)

    def _done(self, outcome: PollOutcome, attempts: int) -> PollResult:
        logger.info("Payment confirmation polling finished", label=self._label, outcome=outcome.value, attempts=attempts)
        return PollResult(outcome=outcome, attempts=attempts)


__all__ = ["ConfirmationCheck", "PaymentConfirmationPoller", "PollOutcome", "PollResult"]
