"""The TCP-stream half of the emulated host."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from proxyemu.root import _slice_buffer
from proxyemu.types import Action, BufferType, PeerType
from proxyemu.vm import PLUGIN_CONTEXT_ID, VMState

_log = logging.getLogger(__name__)


@dataclass
class _TcpStream:
    upstream: bytes = b""
    downstream: bytes = b""


class NetworkHost:
    """Keeps the buffered upstream and downstream data of every connection."""

    def __init__(self, vm_state: VMState) -> None:
        self.vm = vm_state
        self._streams: dict[int, _TcpStream] = {}

    def _stream(self, context_id: int) -> _TcpStream:
        try:
            return self._streams[context_id]
        except KeyError:
            raise KeyError(f"invalid context id: {context_id}") from None

    def get_buffer_bytes(self, buffer_type: BufferType, start: int, max_size: int) -> bytes:
        """Return up to ``max_size`` bytes of the active connection's data."""
        stream = self._stream(self.vm.active_context_id)
        if buffer_type == BufferType.UPSTREAM_DATA:
            buf = stream.upstream
        elif buffer_type == BufferType.DOWNSTREAM_DATA:
            buf = stream.downstream
        else:
            raise ValueError(f"buffer type {buffer_type} is not connection data")
        return _slice_buffer(buf, start, max_size)

    @staticmethod
    def _check_action(action: Action) -> Action:
        if action not in (Action.PAUSE, Action.CONTINUE):
            raise ValueError(f"invalid action type: {int(action)}")
        return action

    def call_on_upstream_data(self, context_id: int, data: bytes | None) -> Action:
        """Deliver upstream data; it stays buffered while the plugin pauses."""
        stream = self._stream(context_id)
        if data:
            stream.upstream += bytes(data)
        action = self._check_action(
            self.vm.on_upstream_data(context_id, len(stream.upstream), False)
        )
        if action == Action.CONTINUE:
            stream.upstream = b""
        return action

    def call_on_downstream_data(self, context_id: int, data: bytes | None) -> Action:
        """Deliver downstream data; it stays buffered while the plugin pauses."""
        stream = self._stream(context_id)
        if data:
            stream.downstream += bytes(data)
        action = self._check_action(
            self.vm.on_downstream_data(context_id, len(stream.downstream), False)
        )
        if action == Action.CONTINUE:
            stream.downstream = b""
        return action

    def initialize_connection(self) -> tuple[int, Action]:
        """Open a connection; return its context id and the plugin's action."""
        context_id = self.vm.create_context(None, PLUGIN_CONTEXT_ID)
        action = self.vm.on_new_connection(context_id)
        self._streams[context_id] = _TcpStream()
        return context_id, action

    def close_upstream_connection(self, context_id: int) -> None:
        self.vm.on_upstream_connection_close(context_id, PeerType.LOCAL)

    def close_downstream_connection(self, context_id: int) -> None:
        self.vm.on_downstream_connection_close(context_id, PeerType.LOCAL)

    def complete_connection(self, context_id: int) -> None:
        """Finish the connection and forget its data."""
        self.vm.on_log(context_id)
        self.vm.on_delete(context_id)
        self._streams.pop(context_id, None)