"""Run text generation off the UI thread with a hard deadline.

Every dispatched request runs on one dedicated asyncio loop living in a
daemon thread. The caller gets a :class:`PendingCall` back immediately. The
backend result and the deadline timer race to write the call's single-slot
mailbox; the first write wins and is delivered exactly once, the loser is
dropped. When the deadline wins the backend task is cancelled.
"""

from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import contextlib
import itertools
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from commitlore.core.providers.base import TextGenerator
from commitlore.core.providers.error_mapping import classify_exception
from commitlore.utils.log import CommitloreLogger, get_logger

DEFAULT_TIMEOUT = 30.0
SHUTDOWN_CODE = "dispatcher_shutdown"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    BACKEND_FAILURE = "backend_failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class GenerationRequest:
    """Prompt plus optional system instruction; empty string means none."""

    prompt: str
    system_prompt: str = ""


@dataclass(frozen=True)
class GenerationOutcome:
    """Terminal result of one generation request."""

    status: OutcomeStatus
    content: str = ""
    error_code: str = ""
    error_message: str = ""
    duration_ms: float = 0.0
    provider_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(
        cls, content: str, *, duration_ms: float = 0.0, provider_id: Optional[str] = None
    ) -> "GenerationOutcome":
        return cls(
            status=OutcomeStatus.SUCCESS,
            content=content,
            duration_ms=duration_ms,
            provider_id=provider_id,
        )

    @classmethod
    def failure(
        cls,
        exc: BaseException,
        *,
        duration_ms: float = 0.0,
        provider_id: Optional[str] = None,
    ) -> "GenerationOutcome":
        code, message = classify_exception(exc)
        return cls.failure_code(
            code, message, duration_ms=duration_ms, provider_id=provider_id
        )

    @classmethod
    def failure_code(
        cls,
        error_code: str,
        error_message: str,
        *,
        duration_ms: float = 0.0,
        provider_id: Optional[str] = None,
    ) -> "GenerationOutcome":
        return cls(
            status=OutcomeStatus.BACKEND_FAILURE,
            error_code=error_code,
            error_message=error_message,
            duration_ms=duration_ms,
            provider_id=provider_id,
        )

    @classmethod
    def timeout(
        cls, timeout: float, *, duration_ms: float = 0.0, provider_id: Optional[str] = None
    ) -> "GenerationOutcome":
        return cls(
            status=OutcomeStatus.TIMEOUT,
            error_code="timeout",
            error_message=f"Generation did not finish within {timeout:g}s",
            duration_ms=duration_ms,
            provider_id=provider_id,
        )


OutcomeCallback = Callable[[GenerationOutcome], None]


def _settle_future(future: asyncio.Future, outcome: GenerationOutcome) -> None:
    if not future.done():
        future.set_result(outcome)


class Mailbox:
    """Single-slot, write-once outcome holder shared by two racing producers."""

    def __init__(
        self,
        on_outcome: Optional[OutcomeCallback] = None,
        logger: Optional[CommitloreLogger] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._outcome: Optional[GenerationOutcome] = None
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []
        self._on_outcome = on_outcome
        self._logger = logger or get_logger()

    def offer(self, outcome: GenerationOutcome) -> bool:
        """Store ``outcome`` unless one is already present; True if this write won."""
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
            self._ready.set()
            waiters, self._waiters = self._waiters, []

        for loop, future in waiters:
            # The waiter's loop may already be gone.
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(_settle_future, future, outcome)

        if self._on_outcome is not None:
            try:
                self._on_outcome(outcome)
            except Exception:  # noqa: BLE001 - a consumer bug must not kill the loop
                self._logger.exception(
                    "[dispatch] Outcome callback raised",
                    extra={"status": outcome.status.value, "provider_id": outcome.provider_id},
                )
        return True

    def peek(self) -> Optional[GenerationOutcome]:
        with self._lock:
            return self._outcome

    def add_waiter(
        self, loop: asyncio.AbstractEventLoop, future: asyncio.Future
    ) -> Optional[GenerationOutcome]:
        """Settle ``future`` on ``loop`` once filled; returns the outcome if already there."""
        with self._lock:
            if self._outcome is not None:
                return self._outcome
            self._waiters.append((loop, future))
            return None

    def wait(self, timeout: Optional[float] = None) -> Optional[GenerationOutcome]:
        if not self._ready.wait(timeout):
            return None
        return self.peek()

    @property
    def filled(self) -> bool:
        return self._ready.is_set()


class PendingCall:
    """Handle for one in-flight request."""

    def __init__(
        self,
        call_id: int,
        request: GenerationRequest,
        timeout: float,
        *,
        provider_id: Optional[str] = None,
        on_outcome: Optional[OutcomeCallback] = None,
        logger: Optional[CommitloreLogger] = None,
    ) -> None:
        self.id = call_id
        self.request = request
        self.timeout = timeout
        self.provider_id = provider_id
        self.dispatched_at = time.monotonic()
        # Fixed once; never extended.
        self.deadline = self.dispatched_at + timeout
        self._mailbox = Mailbox(on_outcome, logger)
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<PendingCall id={self.id} provider={self.provider_id!r} {state}>"

    def done(self) -> bool:
        return self._mailbox.filled

    def poll(self) -> Optional[GenerationOutcome]:
        """Return the outcome if it has been delivered, else None."""
        return self._mailbox.peek()

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.dispatched_at) * 1000, 2)

    def result(self, timeout: Optional[float] = None) -> GenerationOutcome:
        """Block until the outcome exists.

        Raises ``TimeoutError`` if ``timeout`` seconds pass first. The dispatch
        deadline guarantees an outcome eventually, so ``None`` waits for it.
        """
        outcome = self._mailbox.wait(timeout)
        if outcome is None:
            raise TimeoutError(f"call {self.id} has no outcome yet")
        return outcome

    async def wait(self) -> GenerationOutcome:
        """Suspend the current coroutine until the outcome exists.

        No thread is held while waiting; the winning write settles a future
        on the caller's loop.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        outcome = self._mailbox.add_waiter(loop, future)
        if outcome is not None:
            return outcome
        return await future


class AsyncDispatcher:
    """Runs generation requests on a background loop with per-call deadlines."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT,
        *,
        logger: Optional[CommitloreLogger] = None,
        thread_name: str = "commitlore-dispatch",
    ) -> None:
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self.default_timeout = default_timeout
        self._logger = logger or get_logger()
        self._thread_name = thread_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._loop_lock = threading.Lock()
        self._pending: Dict[int, PendingCall] = {}
        self._pending_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._closed = False
        self._shutdown_registered = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        """Create (or return) the dedicated loop."""
        if self._loop and self._loop.is_running():
            return self._loop

        with self._loop_lock:
            if self._loop and self._loop.is_running():
                return self._loop

            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _run_loop() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            thread = threading.Thread(target=_run_loop, name=self._thread_name, daemon=True)
            thread.start()
            ready.wait()

            self._loop = loop
            self._thread = thread
            if not self._shutdown_registered:
                atexit.register(self.shutdown)
                self._shutdown_registered = True
            self._logger.debug(
                "[dispatch] Background loop started", extra={"thread_name": self._thread_name}
            )
            return loop

    def dispatch(
        self,
        generator: TextGenerator,
        request: GenerationRequest,
        timeout: Optional[float] = None,
        on_outcome: Optional[OutcomeCallback] = None,
        provider_id: Optional[str] = None,
    ) -> PendingCall:
        """Start ``request`` on ``generator`` and return without waiting.

        ``on_outcome`` runs exactly once on the background thread; UI code
        should hand the outcome over to its own thread from there.
        """
        effective = self.default_timeout if timeout is None else timeout
        if effective <= 0:
            raise ValueError("timeout must be positive")
        if self._closed:
            raise RuntimeError("dispatcher has been shut down")

        call = PendingCall(
            next(self._ids),
            request,
            effective,
            provider_id=provider_id or getattr(generator, "provider_id", None) or None,
            on_outcome=on_outcome,
            logger=self._logger,
        )
        with self._pending_lock:
            self._pending[call.id] = call

        loop = self._ensure_loop()
        loop.call_soon_threadsafe(self._start, call, generator)
        self._logger.debug(
            "[dispatch] Request dispatched",
            extra={
                "call_id": call.id,
                "provider_id": call.provider_id,
                "timeout": effective,
                "prompt_length": len(request.prompt),
            },
        )
        return call

    def _start(self, call: PendingCall, generator: TextGenerator) -> None:
        if call.done():
            return
        loop = asyncio.get_running_loop()
        remaining = call.deadline - time.monotonic()
        if remaining <= 0:
            self._expire(call)
            return
        call._task = loop.create_task(self._run_backend(call, generator))
        call._timer = loop.call_later(remaining, self._expire, call)

    async def _run_backend(self, call: PendingCall, generator: TextGenerator) -> None:
        request = call.request
        try:
            content = await generator.generate_with_system(request.system_prompt, request.prompt)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - every backend error becomes an outcome
            outcome = GenerationOutcome.failure(
                exc, duration_ms=call.elapsed_ms(), provider_id=call.provider_id
            )
        else:
            outcome = GenerationOutcome.success(
                content, duration_ms=call.elapsed_ms(), provider_id=call.provider_id
            )
        self._resolve(call, outcome)

    def _resolve(self, call: PendingCall, outcome: GenerationOutcome) -> None:
        if call._timer is not None:
            call._timer.cancel()
        if call._mailbox.offer(outcome):
            self._forget(call)
            log = self._logger.info if outcome.ok else self._logger.warning
            log(
                "[dispatch] Request finished",
                extra={
                    "call_id": call.id,
                    "provider_id": call.provider_id,
                    "status": outcome.status.value,
                    "error_code": outcome.error_code or None,
                    "duration_ms": outcome.duration_ms,
                },
            )
        else:
            self._logger.debug(
                "[dispatch] Late result discarded",
                extra={"call_id": call.id, "status": outcome.status.value},
            )

    def _expire(self, call: PendingCall) -> None:
        outcome = GenerationOutcome.timeout(
            call.timeout, duration_ms=call.elapsed_ms(), provider_id=call.provider_id
        )
        if not call._mailbox.offer(outcome):
            return
        self._forget(call)
        self._logger.warning(
            "[dispatch] Request timed out",
            extra={
                "call_id": call.id,
                "provider_id": call.provider_id,
                "timeout": call.timeout,
                "duration_ms": outcome.duration_ms,
            },
        )
        if call._task is not None and not call._task.done():
            call._task.cancel()

    def _forget(self, call: PendingCall) -> None:
        with self._pending_lock:
            self._pending.pop(call.id, None)

    async def _drain(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in asyncio.all_tasks() if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        with contextlib.suppress(Exception):
            await asyncio.get_running_loop().shutdown_asyncgens()

    def shutdown(self, timeout: float = 3.0) -> None:
        """Stop the loop; calls still in flight resolve as backend failures."""
        with self._pending_lock:
            already_closed = self._closed
            self._closed = True
            outstanding = list(self._pending.values())
            self._pending.clear()

        for call in outstanding:
            if call._timer is not None:
                call._timer.cancel()
            call._mailbox.offer(
                GenerationOutcome.failure_code(
                    SHUTDOWN_CODE,
                    "Dispatcher shut down before the request finished",
                    duration_ms=call.elapsed_ms(),
                    provider_id=call.provider_id,
                )
            )
        if outstanding:
            self._logger.warning(
                "[dispatch] Shutdown resolved outstanding requests",
                extra={"count": len(outstanding)},
            )

        with self._loop_lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None

        if loop is None or loop.is_closed():
            return
        try:
            if loop.is_running():
                try:
                    asyncio.run_coroutine_threadsafe(self._drain(), loop).result(timeout=timeout)
                except (RuntimeError, TimeoutError, concurrent.futures.TimeoutError):
                    self._logger.debug("[dispatch] Failed to drain background loop", exc_info=True)
                with contextlib.suppress(RuntimeError):
                    loop.call_soon_threadsafe(loop.stop)
        finally:
            if thread and thread.is_alive():
                thread.join(timeout=2)
            if not loop.is_running():
                with contextlib.suppress(Exception):
                    loop.close()
        if not already_closed:
            self._logger.debug("[dispatch] Background loop stopped")


# Global instance
_dispatcher: Optional[AsyncDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> AsyncDispatcher:
    """Get the process-wide dispatcher, creating a fresh one after shutdown."""
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None or _dispatcher.closed:
            _dispatcher = AsyncDispatcher()
        return _dispatcher


def generate_sync(
    generator: TextGenerator,
    request: GenerationRequest,
    timeout: Optional[float] = None,
    *,
    dispatcher: Optional[AsyncDispatcher] = None,
) -> GenerationOutcome:
    """Dispatch ``request`` and block until its outcome is delivered."""
    call = (dispatcher or get_dispatcher()).dispatch(generator, request, timeout=timeout)
    return call.result()
