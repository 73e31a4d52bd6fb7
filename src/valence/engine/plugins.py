"""Plugin dispatcher: resolve named evaluators once, invoke them in isolation.

A plugin is anything exposing ``evaluate(content, rule, context)``: a module,
an object, or a bare callable.  Names map to plugins through a manifest whose
values are import targets (``"package.module"`` or ``"package.module:attr"``)
or already-built evaluators.  Resolution and invocation failures never escape
this module; they come back as a failed :class:`PluginOutcome`.
"""

from __future__ import annotations

import importlib
import importlib.metadata
import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from valence.engine.models import (
    KIND_PLUGIN_EXECUTION,
    KIND_PLUGIN_RESOLUTION,
    KIND_PLUGIN_TIMEOUT,
    OperatorOutcome,
    PluginOutcome,
)

if TYPE_CHECKING:
    from valence.engine.definitions import RuleDefinition
    from valence.engine.models import EvaluationContext

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "valence.plugins"
DEFAULT_TIMEOUT = 10.0

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PluginResolutionError(Exception):
    """A plugin name could not be turned into an evaluator."""


class PluginExecutionError(Exception):
    """A plugin raised, timed out, or returned a malformed result."""


# ---------------------------------------------------------------------------
# Handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PluginHandle:
    """A resolved plugin, or the reason it could not be resolved."""

    name: str
    evaluate: Callable[..., Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.evaluate is not None


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def discover_entry_points() -> dict[str, str]:
    """Return plugins advertised by installed distributions."""
    eps = importlib.metadata.entry_points(group=ENTRY_POINT_GROUP)
    return {ep.name: ep.value for ep in eps}


def build_manifest(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge manifest sources; later sources override earlier ones."""
    manifest: dict[str, Any] = {}
    for source in sources:
        if source:
            manifest.update(source)
    return manifest


def _import_target(target: str) -> object:
    module_name, _, attr = target.partition(":")
    module = importlib.import_module(module_name)
    obj: object = module
    for part in filter(None, attr.split(".")):
        obj = getattr(obj, part)
    return obj


def _entry_point_of(plugin: object) -> Callable[..., Any]:
    evaluate = getattr(plugin, "evaluate", None)
    if callable(evaluate):
        return evaluate  # type: ignore[no-any-return]
    if callable(plugin) and not isinstance(plugin, type):
        return plugin  # type: ignore[return-value]
    msg = "must expose an 'evaluate' callable"
    raise PluginResolutionError(msg)


# ---------------------------------------------------------------------------
# Result normalisation
# ---------------------------------------------------------------------------


def _str_tuple(value: object, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    msg = f"'{field_name}' must be a list of strings"
    raise PluginExecutionError(msg)


def normalize_outcome(raw: object) -> PluginOutcome:
    """Validate a plugin's return value and convert it to a PluginOutcome.

    Raises ``PluginExecutionError`` for any shape the engine cannot use.
    """
    if isinstance(raw, PluginOutcome):
        return raw
    if isinstance(raw, OperatorOutcome):
        return PluginOutcome(
            passed=raw.passed, message=raw.message, line=raw.line, excerpt=raw.excerpt
        )
    if isinstance(raw, bool):
        return PluginOutcome(passed=raw)
    if not isinstance(raw, Mapping):
        msg = f"returned {type(raw).__name__}, expected a mapping with 'passed'"
        raise PluginExecutionError(msg)

    passed = raw.get("passed")
    if not isinstance(passed, bool):
        msg = "result field 'passed' must be a boolean"
        raise PluginExecutionError(msg)

    confidence_raw = raw.get("confidence")
    confidence: float | None = None
    if confidence_raw is not None:
        if isinstance(confidence_raw, bool) or not isinstance(confidence_raw, (int, float)):
            msg = "result field 'confidence' must be a number"
            raise PluginExecutionError(msg)
        confidence = float(confidence_raw)
        if not (0.0 <= confidence <= 1.0):
            msg = f"result confidence {confidence} is outside 0.0-1.0"
            raise PluginExecutionError(msg)

    metadata_raw = raw.get("metadata")
    if metadata_raw is None:
        metadata: Mapping[str, Any] = {}
    elif isinstance(metadata_raw, Mapping):
        metadata = dict(metadata_raw)
    else:
        msg = "result field 'metadata' must be a mapping"
        raise PluginExecutionError(msg)

    line_raw = metadata.get("line")
    line = int(line_raw) if isinstance(line_raw, int) and not isinstance(line_raw, bool) else None
    excerpt_raw = metadata.get("excerpt")
    message_raw = raw.get("message")

    return PluginOutcome(
        passed=passed,
        message=str(message_raw) if message_raw is not None else None,
        line=line,
        excerpt=str(excerpt_raw) if excerpt_raw is not None else None,
        confidence=confidence,
        warnings=_str_tuple(raw.get("warnings"), "warnings"),
        suggestions=_str_tuple(raw.get("suggestions"), "suggestions"),
        metadata=metadata,
    )


def _failed(kind: str, message: str) -> PluginOutcome:
    return PluginOutcome(passed=False, message=message, failure=kind)


def call_with_timeout(
    func: Callable[..., Any], *args: Any, timeout: float, name: str = "call"
) -> Any:
    """Run ``func(*args)`` on a fresh daemon thread and wait up to *timeout* seconds.

    The clock starts when the thread starts, never behind other calls.
    Raises ``concurrent.futures.TimeoutError`` on overrun; the thread keeps
    running in the background and does not hold up later calls or exit.
    Exceptions raised by *func* are re-raised in the caller.
    """
    future: Future[Any] = Future()

    def _target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = func(*args)
        except BaseException as exc:  # noqa: BLE001 - handed back to the caller
            future.set_exception(exc)
        else:
            future.set_result(result)

    thread = threading.Thread(target=_target, name=f"valence-plugin-{name}", daemon=True)
    thread.start()
    return future.result(timeout=timeout)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class PluginDispatcher:
    """Resolve-once, invoke-many access to external evaluators for one run.

    Every import and every invocation runs on its own daemon thread and is
    awaited for at most *timeout* seconds, so a plugin that hangs cannot
    delay calls to any other plugin.  A call that overruns is reported as a
    timeout and its thread is abandoned, not killed.  After its first
    timeout a plugin is skipped for the rest of the run.
    """

    def __init__(
        self,
        manifest: Mapping[str, Any] | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._manifest: dict[str, Any] = dict(manifest or {})
        self._timeout = timeout
        self._cache: dict[str, PluginHandle] = {}
        self._name_locks: dict[str, threading.Lock] = {}
        self._timed_out: set[str] = set()
        self._lock = threading.Lock()

    @property
    def names(self) -> list[str]:
        return sorted(self._manifest)

    @property
    def timed_out(self) -> list[str]:
        """Plugins skipped for the rest of the run after timing out."""
        with self._lock:
            return sorted(self._timed_out)

    def __enter__(self) -> PluginDispatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Forget resolved handles; abandoned (timed-out) calls are not awaited."""
        with self._lock:
            self._cache.clear()
            self._name_locks.clear()

    # -- resolution ---------------------------------------------------------

    def resolve(self, name: str) -> PluginHandle:
        """Return the cached handle for *name*, resolving it on first use.

        Only callers asking for the same name wait on each other.
        """
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                logger.debug("Plugin '%s' served from cache", name)
                return cached
            name_lock = self._name_locks.setdefault(name, threading.Lock())

        with name_lock:
            with self._lock:
                cached = self._cache.get(name)
            if cached is not None:
                return cached
            try:
                handle = PluginHandle(name=name, evaluate=self.load(name))
            except PluginResolutionError as exc:
                logger.warning("%s", exc)
                handle = PluginHandle(name=name, error=str(exc))
            with self._lock:
                self._cache[name] = handle
            return handle

    def load(self, name: str) -> Callable[..., Any]:
        """Import the evaluator for *name*, bypassing the cache.

        Raises ``PluginResolutionError`` when the name is unknown, the import
        fails or overruns the timeout, or the target has no ``evaluate``.
        """
        if name not in self._manifest:
            msg = f"Plugin '{name}' not found in manifest"
            raise PluginResolutionError(msg)

        target = self._manifest[name]
        try:
            if isinstance(target, str):
                plugin = call_with_timeout(
                    _import_target, target, timeout=self._timeout, name=name
                )
            else:
                plugin = target
            return _entry_point_of(plugin)
        except FutureTimeoutError:
            msg = f"Failed to load plugin '{name}': import timed out after {self._timeout:g}s"
            raise PluginResolutionError(msg) from None
        except Exception as exc:  # noqa: BLE001 - any import-time failure is isolated
            msg = f"Failed to load plugin '{name}': {exc}"
            raise PluginResolutionError(msg) from exc

    # -- invocation ---------------------------------------------------------

    def invoke(
        self,
        handle: PluginHandle,
        content: object,
        rule: RuleDefinition,
        context: EvaluationContext,
    ) -> PluginOutcome:
        """Call a resolved plugin with a timeout and validate what it returns."""
        if handle.evaluate is None:
            error = handle.error or f"Plugin '{handle.name}' unavailable"
            return _failed(KIND_PLUGIN_RESOLUTION, error)

        with self._lock:
            skipped = handle.name in self._timed_out
        if skipped:
            return _failed(
                KIND_PLUGIN_TIMEOUT,
                f"Plugin '{handle.name}' skipped after an earlier timeout in this run",
            )

        try:
            raw = call_with_timeout(
                handle.evaluate, content, rule, context, timeout=self._timeout, name=handle.name
            )
        except FutureTimeoutError:
            with self._lock:
                self._timed_out.add(handle.name)
            logger.warning("Plugin '%s' timed out after %.1fs", handle.name, self._timeout)
            return _failed(
                KIND_PLUGIN_TIMEOUT,
                f"Plugin '{handle.name}' timed out after {self._timeout:g}s",
            )
        except Exception as exc:  # noqa: BLE001 - plugin errors are isolated per rule
            logger.warning("Plugin '%s' raised: %s", handle.name, exc)
            return _failed(KIND_PLUGIN_EXECUTION, f"Plugin execution error: {exc}")

        try:
            return normalize_outcome(raw)
        except PluginExecutionError as exc:
            logger.warning("Plugin '%s' returned a malformed result: %s", handle.name, exc)
            return _failed(
                KIND_PLUGIN_EXECUTION,
                f"Plugin '{handle.name}' returned a malformed result: {exc}",
            )

    def run(
        self,
        name: str,
        content: object,
        rule: RuleDefinition,
        context: EvaluationContext,
    ) -> PluginOutcome:
        """Resolve *name* and invoke it; the engine's single entry point."""
        return self.invoke(self.resolve(name), content, rule, context)
