"""The emulated host that a plugin is tested against.

It combines the plugin-wide host state, the HTTP streams and the TCP
connections. Every public method of those parts is reachable on the
emulator itself.
"""

from __future__ import annotations

from typing import Iterable

from proxyemu.http import HttpHost
from proxyemu.network import NetworkHost
from proxyemu.option import EmulatorOption
from proxyemu.root import Pairs, RootHost, _slice_buffer
from proxyemu.types import BadArgumentError, BufferType, MapType, NotFoundError
from proxyemu.vm import PLUGIN_CONTEXT_ID, VMState

_ROOT_BUFFERS = (
    BufferType.PLUGIN_CONFIGURATION,
    BufferType.VM_CONFIGURATION,
    BufferType.HTTP_CALL_RESPONSE_BODY,
)
_NETWORK_BUFFERS = (BufferType.DOWNSTREAM_DATA, BufferType.UPSTREAM_DATA)
_HTTP_BUFFERS = (BufferType.HTTP_REQUEST_BODY, BufferType.HTTP_RESPONSE_BODY)
_HTTP_MAPS = (
    MapType.HTTP_REQUEST_HEADERS,
    MapType.HTTP_RESPONSE_HEADERS,
    MapType.HTTP_REQUEST_TRAILERS,
    MapType.HTTP_RESPONSE_TRAILERS,
)
_CALLOUT_MAPS = (MapType.HTTP_CALL_RESPONSE_HEADERS, MapType.HTTP_CALL_RESPONSE_TRAILERS)

# Parts searched, in order, for attributes the emulator does not define itself.
_PARTS = ("root", "http", "network")


class HostEmulator:
    """Runs a plugin's callbacks and records what the plugin asks of the host.

    Use it as a context manager, or call :meth:`reset` when done.
    """

    def __init__(
        self,
        vm: VMState,
        root: RootHost,
        network: NetworkHost,
        http: HttpHost,
        properties: dict[tuple[str, ...], bytes] | None = None,
    ) -> None:
        self.vm = vm
        self.root = root
        self.network = network
        self.http = http
        self.effective_context_id = 0
        self.properties: dict[tuple[str, ...], bytes] = dict(properties or {})

    def __getattr__(self, name: str):
        if not name.startswith("_"):
            for part_name in _PARTS:
                part = self.__dict__.get(part_name)
                if part is not None and hasattr(part, name):
                    return getattr(part, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def get_buffer_bytes(self, buffer_type: BufferType, start: int, max_size: int) -> bytes:
        """Return up to ``max_size`` bytes of a buffer, starting at ``start``."""
        if buffer_type == BufferType.PLUGIN_CONFIGURATION:
            return _slice_buffer(self.root.plugin_configuration, start, max_size)
        if buffer_type == BufferType.VM_CONFIGURATION:
            return _slice_buffer(self.root.vm_configuration, start, max_size)
        if buffer_type == BufferType.HTTP_CALL_RESPONSE_BODY:
            return self.root.get_http_call_response_body(start, max_size)
        if buffer_type in _NETWORK_BUFFERS:
            return self.network.get_buffer_bytes(buffer_type, start, max_size)
        if buffer_type in _HTTP_BUFFERS:
            return self.http.get_buffer_bytes(buffer_type, start, max_size)
        raise ValueError(f"buffer type {buffer_type} is not supported by the host emulator")

    def set_buffer_bytes(
        self, buffer_type: BufferType, start: int, max_size: int, data: bytes
    ) -> None:
        """Change an HTTP body; other buffers cannot be written."""
        if buffer_type in _HTTP_BUFFERS:
            self.http.set_buffer_bytes(buffer_type, start, max_size, data)
            return
        raise ValueError(f"buffer type {buffer_type} is not supported by the host emulator yet")

    def get_header_map_value(self, map_type: MapType, key: str) -> str:
        """Return a value from a stream's headers or from an HTTP call response."""
        if map_type in _HTTP_MAPS:
            return self.http.get_header_map_value(map_type, key)
        if map_type == MapType.HTTP_CALL_RESPONSE_HEADERS:
            return self.root.get_http_call_response_header(key)
        if map_type == MapType.HTTP_CALL_RESPONSE_TRAILERS:
            key = key.lower()
            for name, value in self.root.get_http_call_response_trailers():
                if name == key:
                    return value
            raise NotFoundError()
        raise ValueError(f"map type {map_type} is not supported by the host emulator")

    def get_header_map_pairs(self, map_type: MapType) -> Pairs:
        """Return every pair of a stream's map or of an HTTP call response map."""
        if map_type in _HTTP_MAPS:
            return self.http.get_header_map_pairs(map_type)
        if map_type == MapType.HTTP_CALL_RESPONSE_HEADERS:
            return self.root.get_http_call_response_headers()
        if map_type == MapType.HTTP_CALL_RESPONSE_TRAILERS:
            return self.root.get_http_call_response_trailers()
        raise ValueError(f"map type {map_type} is not supported by the host emulator")

    def set_effective_context(self, context_id: int) -> None:
        """Make ``context_id`` the context that host calls act on."""
        self.effective_context_id = context_id
        self.vm.active_context_id = context_id

    def get_property(self, path: Iterable[str]) -> bytes:
        """Return the property stored at ``path``."""
        key = tuple(path)
        if not key:
            raise BadArgumentError("path must not be empty")
        try:
            return self.properties[key]
        except KeyError:
            raise NotFoundError() from None

    def set_property(self, path: Iterable[str], data: bytes) -> None:
        """Store ``data`` at ``path``; neither may be empty."""
        key = tuple(path)
        if not key:
            raise BadArgumentError("path must not be empty")
        if not data:
            raise BadArgumentError("data must not be empty")
        self.properties[key] = bytes(data)

    def reset(self) -> None:
        """Forget the plugin's contexts; the emulator is unusable afterwards."""
        self.vm.reset()

    def __enter__(self) -> HostEmulator:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.reset()


def new_host_emulator(option: EmulatorOption) -> HostEmulator:
    """Build a host emulator for the plugin in ``option`` and create its plugin context."""
    vm = VMState(option.vm_context)
    root = RootHost(vm, option.plugin_configuration, option.vm_configuration)
    network = NetworkHost(vm)
    http = HttpHost(vm)
    emulator = HostEmulator(vm, root, network, http, option.properties)
    vm.create_context(PLUGIN_CONTEXT_ID, 0)
    return emulator