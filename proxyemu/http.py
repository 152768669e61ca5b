"""The HTTP-stream half of the emulated host."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from proxyemu.root import Pairs, _lower_keys, _slice_buffer
from proxyemu.types import (
    Action,
    BadArgumentError,
    BufferType,
    MapType,
    NotFoundError,
    StreamType,
)
from proxyemu.vm import PLUGIN_CONTEXT_ID, VMState

_HEADER_MAPS = (
    MapType.HTTP_REQUEST_HEADERS,
    MapType.HTTP_RESPONSE_HEADERS,
    MapType.HTTP_REQUEST_TRAILERS,
    MapType.HTTP_RESPONSE_TRAILERS,
)
_BODIES = (BufferType.HTTP_REQUEST_BODY, BufferType.HTTP_RESPONSE_BODY)


@dataclass
class LocalHttpResponse:
    """A response the plugin sent instead of forwarding the request."""

    status_code: int
    status_code_detail: str = ""
    data: bytes = b""
    headers: Pairs = field(default_factory=list)
    grpc_status: int = -1


@dataclass
class _HttpStream:
    maps: dict[MapType, Pairs] = field(
        default_factory=lambda: {map_type: [] for map_type in _HEADER_MAPS}
    )
    # What the plugin sees, including anything buffered before.
    bodies: dict[BufferType, bytes] = field(
        default_factory=lambda: {buffer_type: b"" for buffer_type in _BODIES}
    )
    # Kept while the plugin pauses to buffer; cleared when it continues.
    buffered: dict[BufferType, bytes] = field(
        default_factory=lambda: {buffer_type: b"" for buffer_type in _BODIES}
    )
    action: Action = Action.CONTINUE
    sent_local_response: LocalHttpResponse | None = None


def _header_map(map_type: int) -> MapType:
    try:
        kind = MapType(map_type)
    except ValueError:
        kind = None
    if kind not in _HEADER_MAPS:
        raise ValueError(f"map type {map_type} is not an HTTP stream map")
    return kind


def _body_buffer(buffer_type: int) -> BufferType:
    try:
        kind = BufferType(buffer_type)
    except ValueError:
        kind = None
    if kind not in _BODIES:
        raise ValueError(f"buffer type {buffer_type} is not an HTTP body")
    return kind


class HttpHost:
    """Keeps the headers, bodies and trailers of every HTTP stream."""

    def __init__(self, vm_state: VMState) -> None:
        self.vm = vm_state
        self._streams: dict[int, _HttpStream] = {}

    def _stream(self, context_id: int) -> _HttpStream:
        try:
            return self._streams[context_id]
        except KeyError:
            raise KeyError(f"invalid context id: {context_id}") from None

    def _active(self) -> _HttpStream:
        return self._stream(self.vm.active_context_id)

    # Host calls made by the plugin.

    def get_buffer_bytes(self, buffer_type: BufferType, start: int, max_size: int) -> bytes:
        """Return up to ``max_size`` bytes of a body, starting at ``start``."""
        kind = _body_buffer(buffer_type)
        return _slice_buffer(self._active().bodies[kind], start, max_size)

    def set_buffer_bytes(
        self, buffer_type: BufferType, start: int, max_size: int, data: bytes
    ) -> None:
        """Prepend, replace or append body data.

        ``start == 0`` with ``max_size == 0`` prepends, ``start == 0`` with a
        ``max_size`` covering the whole body replaces it, and a ``start`` at
        or past the end appends. Anything else is a bad argument.
        """
        kind = _body_buffer(buffer_type)
        stream = self._active()
        current = stream.bodies[kind]
        data = bytes(data)
        if start == 0:
            if max_size == 0:
                stream.bodies[kind] = data + current
            elif max_size >= len(current):
                stream.bodies[kind] = data
            else:
                raise BadArgumentError()
        elif start >= len(current):
            stream.bodies[kind] = current + data
        else:
            raise BadArgumentError()

    def get_header_map_value(self, map_type: MapType, key: str) -> str:
        """Return the first value of ``key``, stripped; empty values count as absent."""
        kind = _header_map(map_type)
        key = key.lower()
        for name, value in self._active().maps[kind]:
            if name == key:
                value = value.strip()
                if not value:
                    raise NotFoundError()
                return value
        raise NotFoundError()

    def add_header_map_value(self, map_type: MapType, key: str, value: str) -> None:
        """Append ``value`` to an existing header, or add the header."""
        self._update(map_type, key, lambda old: old + value, value)

    def replace_header_map_value(self, map_type: MapType, key: str, value: str) -> None:
        """Set the value of a header, adding it if absent."""
        self._update(map_type, key, lambda old: value, value)

    def _update(
        self, map_type: MapType, key: str, change: Callable[[str], str], value: str
    ) -> None:
        pairs = self._active().maps[_header_map(map_type)]
        key = key.lower()
        for position, (name, old) in enumerate(pairs):
            if name == key:
                pairs[position] = (name, change(old))
                return
        pairs.append((key, value))

    def remove_header_map_value(self, map_type: MapType, key: str) -> None:
        """Remove the first entry of ``key``; absent keys are ignored."""
        pairs = self._active().maps[_header_map(map_type)]
        key = key.lower()
        for position, (name, _) in enumerate(pairs):
            if name == key:
                del pairs[position]
                return

    def get_header_map_pairs(self, map_type: MapType) -> Pairs:
        return list(self._active().maps[_header_map(map_type)])

    def set_header_map_pairs(self, map_type: MapType, pairs: Iterable[tuple[str, str]]) -> None:
        self._active().maps[_header_map(map_type)] = _lower_keys(pairs)

    def continue_stream(self, stream_type: StreamType) -> None:
        """Resume the active stream."""
        self._active().action = Action.CONTINUE

    def send_local_response(
        self,
        status_code: int,
        status_code_detail: str,
        body: bytes,
        headers: Iterable[tuple[str, str]] | None,
        grpc_status: int,
    ) -> None:
        """Record a response the plugin sends without going upstream."""
        self._active().sent_local_response = LocalHttpResponse(
            status_code=status_code,
            status_code_detail=status_code_detail,
            data=bytes(body or b""),
            headers=_lower_keys(headers),
            grpc_status=grpc_status,
        )

    # Driving and inspection from tests.

    def initialize_http_context(self) -> int:
        """Create a new HTTP stream context and return its id."""
        context_id = self.vm.create_context(None, PLUGIN_CONTEXT_ID)
        self._streams[context_id] = _HttpStream()
        return context_id

    def _on_headers(
        self,
        context_id: int,
        map_type: MapType,
        pairs: Iterable[tuple[str, str]] | None,
        dispatch: Callable[[int], Action],
    ) -> Action:
        stream = self._stream(context_id)
        stream.maps[map_type] = _lower_keys(pairs)
        stream.action = Action(dispatch(len(stream.maps[map_type])))
        return stream.action

    def call_on_request_headers(
        self, context_id: int, headers: Iterable[tuple[str, str]] | None, end_of_stream: bool
    ) -> Action:
        return self._on_headers(
            context_id,
            MapType.HTTP_REQUEST_HEADERS,
            headers,
            lambda count: self.vm.on_request_headers(context_id, count, end_of_stream),
        )

    def call_on_response_headers(
        self, context_id: int, headers: Iterable[tuple[str, str]] | None, end_of_stream: bool
    ) -> Action:
        return self._on_headers(
            context_id,
            MapType.HTTP_RESPONSE_HEADERS,
            headers,
            lambda count: self.vm.on_response_headers(context_id, count, end_of_stream),
        )

    def call_on_request_trailers(
        self, context_id: int, trailers: Iterable[tuple[str, str]] | None
    ) -> Action:
        return self._on_headers(
            context_id,
            MapType.HTTP_REQUEST_TRAILERS,
            trailers,
            lambda count: self.vm.on_request_trailers(context_id, count),
        )

    def call_on_response_trailers(
        self, context_id: int, trailers: Iterable[tuple[str, str]] | None
    ) -> Action:
        return self._on_headers(
            context_id,
            MapType.HTTP_RESPONSE_TRAILERS,
            trailers,
            lambda count: self.vm.on_response_trailers(context_id, count),
        )

    def _on_body(
        self,
        context_id: int,
        kind: BufferType,
        body: bytes | None,
        dispatch: Callable[[int], Action],
    ) -> Action:
        stream = self._stream(context_id)
        stream.bodies[kind] = stream.buffered[kind] + bytes(body or b"")
        stream.action = Action(dispatch(len(stream.bodies[kind])))
        stream.buffered[kind] = stream.bodies[kind] if stream.action == Action.PAUSE else b""
        return stream.action

    def call_on_request_body(self, context_id: int, body: bytes | None, end_of_stream: bool) -> Action:
        return self._on_body(
            context_id,
            BufferType.HTTP_REQUEST_BODY,
            body,
            lambda size: self.vm.on_request_body(context_id, size, end_of_stream),
        )

    def call_on_response_body(self, context_id: int, body: bytes | None, end_of_stream: bool) -> Action:
        return self._on_body(
            context_id,
            BufferType.HTTP_RESPONSE_BODY,
            body,
            lambda size: self.vm.on_response_body(context_id, size, end_of_stream),
        )

    def complete_http_context(self, context_id: int) -> None:
        """Finish the stream: the plugin logs and then deletes its context."""
        self.vm.on_log(context_id)
        self.vm.on_delete(context_id)

    def get_current_http_stream_action(self, context_id: int) -> Action:
        return self._stream(context_id).action

    def get_current_request_headers(self, context_id: int) -> Pairs:
        return list(self._stream(context_id).maps[MapType.HTTP_REQUEST_HEADERS])

    def get_current_response_headers(self, context_id: int) -> Pairs:
        return list(self._stream(context_id).maps[MapType.HTTP_RESPONSE_HEADERS])

    def get_current_request_body(self, context_id: int) -> bytes:
        return self._stream(context_id).bodies[BufferType.HTTP_REQUEST_BODY]

    def get_current_response_body(self, context_id: int) -> bytes:
        return self._stream(context_id).bodies[BufferType.HTTP_RESPONSE_BODY]

    def get_sent_local_response(self, context_id: int) -> LocalHttpResponse | None:
        return self._stream(context_id).sent_local_response