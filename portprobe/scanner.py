from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import ResolutionError, ScanStalled
from .log import LOGGER_NAME, log_event
from .models import ScanConfig, ScanOutcome, ScanReport, Status
from .probe import Cancellation, connect_probe
from .targets import ResolvedTarget, resolve_target

Probe = Callable[[ResolvedTarget, int, float, Optional[Cancellation]], ScanOutcome]
Resolver = Callable[[str], ResolvedTarget]

_DONE = object()


class SlotPool:
    """
    Fixed number of slots, one per in-flight connection attempt.

    acquire() blocks until a slot frees up or the pool is closed; it never
    polls. close() wakes every waiter (used for cancellation).
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError("SlotPool size must be >= 1")
        self.size = size
        self._free = size
        self._closed = False
        self._cond = threading.Condition()

    @property
    def in_use(self) -> int:
        with self._cond:
            return self.size - self._free

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """True when a slot was taken, False when the pool was closed. TimeoutError on timeout."""
        with self._cond:
            ready = self._cond.wait_for(lambda: self._closed or self._free > 0, timeout)
            if self._closed:
                return False
            if not ready:
                raise TimeoutError(f"no free slot within {timeout:.2f}s")
            self._free -= 1
            return True

    def release(self) -> None:
        with self._cond:
            if self._free >= self.size:
                raise RuntimeError("slot released more times than acquired")
            self._free += 1
            self._cond.notify()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class OutcomeCollector:
    """Thread-safe record of outcomes, keyed by submission index."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_index: Dict[int, ScanOutcome] = {}
        self._in_order: List[ScanOutcome] = []

    def record(self, index: int, outcome: ScanOutcome) -> None:
        with self._lock:
            if index in self._by_index:
                raise RuntimeError(f"outcome for submission #{index} (port {outcome.port}) recorded twice")
            self._by_index[index] = outcome
            self._in_order.append(outcome)

    def indices(self) -> Set[int]:
        with self._lock:
            return set(self._by_index)

    def outcomes(self) -> Tuple[ScanOutcome, ...]:
        with self._lock:
            return tuple(self._in_order)

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_order)


class Scanner:
    """
    Bounded-concurrency connect scan of one target.

    Ports are dispatched in the given order, one slot each; outcomes arrive in
    completion order. A Scanner runs once.
    """

    def __init__(
        self,
        config: ScanConfig,
        probe: Probe = connect_probe,
        resolver: Resolver = resolve_target,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self._probe = probe
        self._resolver = resolver
        self._logger = logger or logging.getLogger(LOGGER_NAME)

        self._slots = SlotPool(config.concurrency)
        self._collector = OutcomeCollector()
        self._cancellation = Cancellation()
        self._cancel_requested = False

        self._started = False
        self._failure: Optional[BaseException] = None
        self._address: Optional[str] = None
        self._report: Optional[ScanReport] = None

    @property
    def report(self) -> Optional[ScanReport]:
        return self._report

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Stop starting attempts and abort in-flight ones. Safe to call from a signal handler."""
        self._cancel_requested = True
        self._abort()

    def _abort(self) -> None:
        self._cancellation.set()
        self._slots.close()

    def run(self, ports: Sequence[int]) -> ScanReport:
        for _ in self.iter_outcomes(ports):
            pass
        assert self._report is not None
        return self._report

    def iter_outcomes(self, ports: Sequence[int]) -> Iterator[ScanOutcome]:
        """
        Yields each outcome as soon as it is recorded.
        Closing the iterator early cancels the scan.
        """
        if self._started:
            raise RuntimeError("Scanner instances are single-use")
        self._started = True

        ports = list(ports)
        results: "queue.Queue[object]" = queue.Queue()
        dispatcher = threading.Thread(
            target=self._dispatch,
            args=(ports, results),
            name="portprobe-dispatch",
            daemon=True,
        )
        finished = False
        dispatcher.start()
        try:
            while True:
                item = results.get()
                if item is _DONE:
                    finished = True
                    break
                yield item  # type: ignore[misc]
        finally:
            if not finished:
                self.cancel()
            dispatcher.join()
            self._cancellation.close()

        if self._failure is not None:
            raise self._failure

    def _record(self, index: int, outcome: ScanOutcome, results: "queue.Queue[object]") -> None:
        self._collector.record(index, outcome)
        results.put(outcome)

    def _attempt(self, index: int, port: int, target: ResolvedTarget, results: "queue.Queue[object]") -> None:
        try:
            try:
                outcome = self._probe(target, port, self.config.timeout, self._cancellation)
            except Exception as exc:
                outcome = ScanOutcome(port, Status.ERROR, f"{type(exc).__name__}: {exc}")
            if outcome.status is Status.ERROR and not outcome.is_cancelled:
                log_event(self._logger, "probe_error", {"port": port, "reason": outcome.reason}, logging.WARNING)
            self._record(index, outcome, results)
        finally:
            # only after the outcome is recorded
            self._slots.release()

    def _dispatch(self, ports: List[int], results: "queue.Queue[object]") -> None:
        cfg = self.config
        start = time.perf_counter()
        stalled = False
        log_event(self._logger, "scan_started", {
            "target": cfg.target,
            "ports": len(ports),
            "timeout": cfg.timeout,
            "concurrency": cfg.concurrency,
        })
        try:
            try:
                target = self._resolver(cfg.target)
            except ResolutionError as e:
                log_event(self._logger, "resolve_failed", {"target": cfg.target, "reason": str(e)}, logging.WARNING)
                for index, port in enumerate(ports):
                    self._record(index, ScanOutcome(port, Status.ERROR, f"resolve: {e}"), results)
                return

            self._address = target.address
            stalled = self._submit_all(ports, target, results)
        except Exception as exc:
            self._failure = exc
        finally:
            self._report = ScanReport(
                outcomes=self._collector.outcomes(),
                unscanned=self._missing(ports),
                cancelled=self._cancel_requested,
                elapsed_s=round(time.perf_counter() - start, 4),
                target=cfg.target,
                address=self._address,
            )
            if isinstance(self._failure, ScanStalled):
                self._failure.report = self._report
            self._log_finish(self._report, stalled)
            results.put(_DONE)

    def _submit_all(self, ports: List[int], target: ResolvedTarget, results: "queue.Queue[object]") -> bool:
        """Dispatches every port; returns True if the scan stalled waiting for a slot."""
        cfg = self.config
        slot_wait = cfg.timeout + cfg.slot_grace
        futures: List[Future] = []
        stalled = False

        pool = ThreadPoolExecutor(max_workers=cfg.concurrency, thread_name_prefix="portprobe")
        try:
            for index, port in enumerate(ports):
                try:
                    acquired = self._slots.acquire(timeout=slot_wait)
                except TimeoutError:
                    stalled = True
                    self._failure = ScanStalled(
                        f"no connection slot freed up within {slot_wait:.2f}s "
                        f"({self._slots.in_use}/{cfg.concurrency} attempts stuck)"
                    )
                    self._abort()
                    break
                if not acquired:
                    break
                try:
                    futures.append(pool.submit(self._attempt, index, port, target, results))
                except BaseException:
                    self._slots.release()
                    raise
        finally:
            # stuck attempts are abandoned rather than waited on
            pool.shutdown(wait=not stalled)

        if not stalled:
            for fut in futures:
                exc = fut.exception()
                if exc is not None and self._failure is None:
                    self._failure = exc
        return stalled

    def _missing(self, ports: List[int]) -> Tuple[int, ...]:
        recorded = self._collector.indices()
        return tuple(p for i, p in enumerate(ports) if i not in recorded)

    def _log_finish(self, report: ScanReport, stalled: bool) -> None:
        fields = {
            "target": report.target,
            "address": report.address,
            "outcomes": len(report.outcomes),
            "open": len(report.open_ports),
            "errors": len(report.errors),
            "undetermined": len(report.undetermined),
            "elapsed_s": report.elapsed_s,
        }
        if stalled:
            log_event(self._logger, "scan_stalled", fields, logging.ERROR)
        elif report.cancelled:
            log_event(self._logger, "scan_cancelled", fields, logging.WARNING)
        else:
            log_event(self._logger, "scan_finished", fields)


def scan(
    target: str,
    ports: Sequence[int],
    timeout: float,
    concurrency: int,
    probe: Probe = connect_probe,
    resolver: Resolver = resolve_target,
    logger: Optional[logging.Logger] = None,
) -> ScanReport:
    config = ScanConfig(target=target, timeout=timeout, concurrency=concurrency)
    return Scanner(config, probe=probe, resolver=resolver, logger=logger).run(ports)
