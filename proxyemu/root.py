"""Host state shared by the whole plugin: logs, queues, shared data,
metrics, HTTP callouts and foreign functions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from proxyemu.types import (
    BadArgumentError,
    CasMismatchError,
    EmptyError,
    LogLevel,
    MetricType,
    NotFoundError,
)
from proxyemu.vm import CalloutCallback, VMState

_log = logging.getLogger(__name__)

Pairs = list[tuple[str, str]]
_UINT64 = 1 << 64


def _lower_keys(pairs: Iterable[tuple[str, str]] | None) -> Pairs:
    return [(key.lower(), value) for key, value in (pairs or ())]


def _slice_buffer(buf: bytes, start: int, max_size: int) -> bytes:
    if not buf:
        raise NotFoundError()
    if start >= len(buf):
        _log.warning("start index out of range: %d (start) >= %d", start, len(buf))
        raise BadArgumentError()
    return bytes(buf[start : start + max_size])


@dataclass
class HttpCalloutAttribute:
    """What a plugin sent in one HTTP call."""

    callout_id: int
    upstream: str
    headers: Pairs = field(default_factory=list)
    trailers: Pairs = field(default_factory=list)
    body: bytes = b""


@dataclass
class _HttpCallResponse:
    headers: Pairs
    trailers: Pairs
    body: bytes


@dataclass
class _SharedData:
    data: bytes
    cas: int


@dataclass
class _Metric:
    type: MetricType
    value: int = 0


class RootHost:
    """The plugin-wide half of the emulated host."""

    def __init__(
        self,
        vm_state: VMState,
        plugin_configuration: bytes = b"",
        vm_configuration: bytes = b"",
    ) -> None:
        self.vm = vm_state
        self.plugin_configuration = bytes(plugin_configuration or b"")
        self.vm_configuration = bytes(vm_configuration or b"")
        self._logs: dict[LogLevel, list[str]] = {level: [] for level in LogLevel}
        self._tick_period = 0
        self._foreign_functions: dict[str, Callable[[bytes], bytes]] = {}
        self._queues: dict[int, list[bytes]] = {}
        self._queue_ids: dict[str, int] = {}
        self._shared_data: dict[str, _SharedData] = {}
        self._callouts_by_context: dict[int, list[HttpCalloutAttribute]] = {}
        self._callout_contexts: dict[int, int] = {}
        self._callout_responses: dict[int, _HttpCallResponse] = {}
        self._active_callout_id = 0
        self._metric_ids: dict[str, int] = {}
        self._metrics: dict[int, _Metric] = {}

    # Host calls made by the plugin.

    def log(self, level: LogLevel, message: str) -> None:
        """Record a log message at ``level``."""
        level = LogLevel(level)
        _log.info("proxy_%s_log: %s", level, message)
        self._logs[level].append(message)

    def set_tick_period_milliseconds(self, period: int) -> None:
        self._tick_period = period

    def register_shared_queue(self, name: str) -> int:
        """Return the id of the queue called ``name``, creating it if needed."""
        if name in self._queue_ids:
            return self._queue_ids[name]
        queue_id = len(self._queues)
        self._queues[queue_id] = []
        self._queue_ids[name] = queue_id
        return queue_id

    def dequeue_shared_queue(self, queue_id: int) -> bytes:
        """Remove and return the oldest item of a queue."""
        queue = self._queues.get(queue_id)
        if queue is None:
            _log.warning("queue %d is not found", queue_id)
            raise NotFoundError()
        if not queue:
            _log.warning("queue %d is empty", queue_id)
            raise EmptyError()
        return queue.pop(0)

    def enqueue_shared_queue(self, queue_id: int, data: bytes) -> None:
        """Append to a queue and tell the plugin it is ready."""
        queue = self._queues.get(queue_id)
        if queue is None:
            _log.warning("queue %d is not found", queue_id)
            raise NotFoundError()
        queue.append(bytes(data))
        self.vm.on_queue_ready(queue_id)

    def get_shared_data(self, key: str) -> tuple[bytes, int]:
        """Return the value stored under ``key`` and its CAS."""
        try:
            entry = self._shared_data[key]
        except KeyError:
            raise NotFoundError() from None
        return entry.data, entry.cas

    def set_shared_data(self, key: str, data: bytes, cas: int) -> None:
        """Store ``data`` under ``key`` if ``cas`` matches the current CAS."""
        value = bytes(data)
        entry = self._shared_data.get(key)
        if entry is None:
            self._shared_data[key] = _SharedData(value, cas + 1)
            return
        if entry.cas != cas:
            raise CasMismatchError()
        entry.cas = cas + 1
        entry.data = value

    def define_metric(self, metric_type: MetricType, name: str) -> int:
        """Return the id of the metric ``name``, defining it if needed."""
        metric_id = self._metric_ids.get(name)
        if metric_id is None:
            metric_id = len(self._metric_ids)
            self._metric_ids[name] = metric_id
            self._metrics[metric_id] = _Metric(MetricType(metric_type))
        return metric_id

    def _metric(self, metric_id: int) -> _Metric:
        try:
            return self._metrics[metric_id]
        except KeyError:
            raise BadArgumentError() from None

    def increment_metric(self, metric_id: int, offset: int) -> None:
        metric = self._metric(metric_id)
        metric.value = (metric.value + offset) % _UINT64

    def record_metric(self, metric_id: int, value: int) -> None:
        self._metric(metric_id).value = value % _UINT64

    def get_metric(self, metric_id: int) -> int:
        return self._metric(metric_id).value

    def http_call(
        self,
        upstream: str,
        headers: Iterable[tuple[str, str]] | None,
        body: bytes,
        trailers: Iterable[tuple[str, str]] | None,
        timeout: int,
        callback: CalloutCallback,
    ) -> int:
        """Record an HTTP call from the active context and return its id.

        ``callback`` runs with (num_headers, body_size, num_trailers) once
        the test delivers a response.
        """
        header_pairs = _lower_keys(headers)
        trailer_pairs = _lower_keys(trailers)
        body = bytes(body or b"")
        _log.info("[http callout to %s] timeout: %d", upstream, timeout)
        _log.info("[http callout to %s] headers: %s", upstream, header_pairs)
        _log.info("[http callout to %s] body: %r", upstream, body)
        _log.info("[http callout to %s] trailers: %s", upstream, trailer_pairs)

        callout_id = len(self._callout_contexts)
        context_id = self.vm.active_context_id
        self._callout_contexts[callout_id] = context_id
        self._callouts_by_context.setdefault(context_id, []).append(
            HttpCalloutAttribute(callout_id, upstream, header_pairs, trailer_pairs, body)
        )
        self.vm.register_http_callout(callout_id, callback)
        return callout_id

    def register_foreign_function(self, name: str, func: Callable[[bytes], bytes]) -> None:
        self._foreign_functions[name] = func

    def call_foreign_function(self, name: str, param: bytes) -> bytes:
        """Run a registered foreign function on ``param``."""
        _log.info("[foreign call] funcname: %s", name)
        _log.info("[foreign call] param: %r", param)
        try:
            func = self._foreign_functions[name]
        except KeyError:
            raise KeyError(f"{name} not registered as a foreign function") from None
        return bytes(func(bytes(param)))

    def _active_response(self) -> _HttpCallResponse:
        try:
            return self._callout_responses[self._active_callout_id]
        except KeyError:
            raise RuntimeError(
                f"callout response unregistered for {self._active_callout_id}"
            ) from None

    def get_http_call_response_headers(self) -> Pairs:
        return list(self._active_response().headers)

    def get_http_call_response_trailers(self) -> Pairs:
        return list(self._active_response().trailers)

    def get_http_call_response_header(self, key: str) -> str:
        """Return a header of the HTTP call response being delivered."""
        key = key.lower()
        for name, value in self._active_response().headers:
            if name == key:
                return value
        raise NotFoundError()

    def get_http_call_response_body(self, start: int, max_size: int) -> bytes:
        return _slice_buffer(self._active_response().body, start, max_size)

    def get_plugin_configuration(self) -> bytes:
        if not self.plugin_configuration:
            raise NotFoundError()
        return self.plugin_configuration

    def get_vm_configuration(self) -> bytes:
        if not self.vm_configuration:
            raise NotFoundError()
        return self.vm_configuration

    # Inspection and driving from tests.

    def get_trace_logs(self) -> list[str]:
        return list(self._logs[LogLevel.TRACE])

    def get_debug_logs(self) -> list[str]:
        return list(self._logs[LogLevel.DEBUG])

    def get_info_logs(self) -> list[str]:
        return list(self._logs[LogLevel.INFO])

    def get_warn_logs(self) -> list[str]:
        return list(self._logs[LogLevel.WARN])

    def get_error_logs(self) -> list[str]:
        return list(self._logs[LogLevel.ERROR])

    def get_critical_logs(self) -> list[str]:
        return list(self._logs[LogLevel.CRITICAL])

    def get_tick_period(self) -> int:
        return self._tick_period

    def tick(self) -> None:
        """Run the plugin's tick handler."""
        self.vm.on_tick()

    def get_queue_size(self, queue_id: int) -> int:
        return len(self._queues.get(queue_id, ()))

    def get_callout_attributes_from_context(self, context_id: int) -> list[HttpCalloutAttribute]:
        return list(self._callouts_by_context.get(context_id, ()))

    def start_vm(self) -> bool:
        return self.vm.on_vm_start(len(self.vm_configuration))

    def start_plugin(self) -> bool:
        return self.vm.on_configure(len(self.plugin_configuration))

    def call_on_http_call_response(
        self,
        callout_id: int,
        headers: Iterable[tuple[str, str]] | None,
        trailers: Iterable[tuple[str, str]] | None,
        body: bytes | None,
    ) -> None:
        """Deliver the response of an HTTP call to the plugin."""
        response = _HttpCallResponse(_lower_keys(headers), _lower_keys(trailers), bytes(body or b""))
        self._callout_responses[callout_id] = response
        self._active_callout_id = callout_id
        try:
            self.vm.on_http_call_response(
                callout_id, len(response.headers), len(response.body), len(response.trailers)
            )
        finally:
            self._active_callout_id = 0
            self._callout_responses.pop(callout_id, None)
            self._callout_contexts.pop(callout_id, None)

    def finish_vm(self) -> bool:
        return self.vm.on_done()

    def _typed_metric_value(self, name: str, expected: MetricType) -> int:
        metric_id = self._metric_ids.get(name)
        if metric_id is None or metric_id not in self._metrics:
            raise KeyError(f"{name} not found")
        metric = self._metrics[metric_id]
        if metric.type is not expected:
            raise ValueError(f"{name} is not {expected} metric type but {metric.type}")
        return metric.value

    def get_counter_metric(self, name: str) -> int:
        return self._typed_metric_value(name, MetricType.COUNTER)

    def get_gauge_metric(self, name: str) -> int:
        return self._typed_metric_value(name, MetricType.GAUGE)

    def get_histogram_metric(self, name: str) -> int:
        return self._typed_metric_value(name, MetricType.HISTOGRAM)