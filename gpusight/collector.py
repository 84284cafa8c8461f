"""Concurrent collection: run every adapter with its own deadline.

Adapters are independent, so each runs in its own daemon thread. The
collector waits for each one until ``start + adapter.timeout_seconds``; an
adapter that misses its deadline is reported as a ``tool_timeout`` failure
and its thread is abandoned. Daemon threads are not joined at interpreter
exit, so a hung tool cannot hold back the snapshot or the process.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence

from gpusight.adapters.base import SourceAdapter
from gpusight.errors import ToolError
from gpusight.models.constants import ToolErrorKind
from gpusight.models.source_models import RawSourceOutput
from gpusight.utils.logger import Logger


def _failed(
    adapter: SourceAdapter,
    kind: ToolErrorKind,
    message: str,
    exit_code: int | None = None,
) -> RawSourceOutput:
    return RawSourceOutput.failed(
        adapter.source, adapter.format_version, kind, message, exit_code
    )


class _AdapterRun:
    """One adapter's collect() call on a daemon thread."""

    def __init__(self, adapter: SourceAdapter) -> None:
        self.adapter = adapter
        self.output: RawSourceOutput | None = None
        self.error: BaseException | None = None
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"gpusight-{adapter.name}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self.output = self.adapter.collect()
        except Exception as e:
            self.error = e
        finally:
            self._done.set()

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)


def _outcome(run: _AdapterRun) -> RawSourceOutput:
    logger = Logger.get("collector")
    adapter = run.adapter
    if isinstance(run.error, ToolError):
        logger.warning(f"{adapter.name}: {run.error}")
        return _failed(adapter, run.error.kind, str(run.error), run.error.exit_code)
    if run.error is not None:
        # An adapter bug fails its own source only
        logger.error(
            f"{adapter.name}: unexpected {type(run.error).__name__}: {run.error}"
        )
        return _failed(
            adapter,
            ToolErrorKind.TOOL_EXECUTION_FAILED,
            f"{type(run.error).__name__}: {run.error}",
        )
    if run.output is None:
        return _failed(
            adapter, ToolErrorKind.TOOL_EXECUTION_FAILED, "adapter returned no output"
        )
    return run.output


def collect_all(adapters: Sequence[SourceAdapter]) -> list[RawSourceOutput]:
    """Run all adapters concurrently and gather their raw outputs.

    Returns:
        One RawSourceOutput per adapter, in adapter order. Tool errors,
        unexpected adapter exceptions and missed deadlines become failed
        outputs; no adapter can abort the cycle.
    """
    logger = Logger.get("collector")
    if not adapters:
        return []

    start = time.monotonic()
    runs = [_AdapterRun(adapter) for adapter in adapters]
    for run in runs:
        run.start()
    logger.debug(f"Started {len(runs)} adapters")

    outputs: list[RawSourceOutput] = []
    for run in runs:
        adapter = run.adapter
        remaining = max(0.0, start + adapter.timeout_seconds - time.monotonic())
        if not run.wait(remaining):
            logger.warning(
                f"{adapter.name}: no output within {adapter.timeout_seconds:g}s"
            )
            outputs.append(
                _failed(
                    adapter,
                    ToolErrorKind.TOOL_TIMEOUT,
                    f"timed out after {adapter.timeout_seconds:g}s",
                )
            )
            continue
        outputs.append(_outcome(run))
    return outputs
