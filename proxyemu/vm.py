"""Plugin-side state: the contexts a plugin has created and their dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from proxyemu.context import HttpContext, PluginContext, TcpContext, VMContext
from proxyemu.types import Action, PeerType

PLUGIN_CONTEXT_ID = 1

CalloutCallback = Callable[[int, int, int], None]


@dataclass
class _Callout:
    callback: CalloutCallback
    caller_context_id: int


class VMState:
    """Holds every context of one plugin and routes host events to them."""

    def __init__(self, vm_context: VMContext | None = None) -> None:
        self.vm_context: VMContext = vm_context if vm_context is not None else VMContext()
        self.active_context_id = 0
        self._next_context_id = PLUGIN_CONTEXT_ID + 1
        self._clear()

    def _clear(self) -> None:
        self.plugin_contexts: dict[int, PluginContext] = {}
        self.http_contexts: dict[int, HttpContext] = {}
        self.tcp_contexts: dict[int, TcpContext] = {}
        self.context_roots: dict[int, int] = {}
        self._callouts: dict[int, _Callout] = {}

    @staticmethod
    def _lookup(contexts: dict, context_id: int, kind: str):
        try:
            return contexts[context_id]
        except KeyError:
            raise KeyError(f"invalid {kind} context id: {context_id}") from None

    def create_context(self, context_id: int | None, root_context_id: int) -> int:
        """Create a plugin context (root id 0) or a stream context; return its id.

        A context id of None takes the next free id.
        """
        if context_id is None:
            context_id = self._next_context_id
            self._next_context_id += 1
        if context_id in self.plugin_contexts or context_id in self.context_roots:
            raise ValueError(f"context id duplicated: {context_id}")

        if root_context_id == 0:
            self.plugin_contexts[context_id] = self.vm_context.new_plugin_context(context_id)
            return context_id

        root = self._lookup(self.plugin_contexts, root_context_id, "plugin")
        http = root.new_http_context(context_id)
        if http is not None:
            self.http_contexts[context_id] = http
            self.context_roots[context_id] = root_context_id
            return context_id
        tcp = root.new_tcp_context(context_id)
        if tcp is not None:
            self.tcp_contexts[context_id] = tcp
            self.context_roots[context_id] = root_context_id
            return context_id
        raise ValueError(f"invalid context creation: {context_id}")

    def _plugin(self) -> PluginContext:
        plugin = self._lookup(self.plugin_contexts, PLUGIN_CONTEXT_ID, "plugin")
        self.active_context_id = PLUGIN_CONTEXT_ID
        return plugin

    def _http(self, context_id: int) -> HttpContext:
        ctx = self._lookup(self.http_contexts, context_id, "http")
        self.active_context_id = context_id
        return ctx

    def _tcp(self, context_id: int) -> TcpContext:
        ctx = self._lookup(self.tcp_contexts, context_id, "tcp")
        self.active_context_id = context_id
        return ctx

    def on_vm_start(self, vm_configuration_size: int) -> bool:
        return bool(self.vm_context.on_vm_start(vm_configuration_size))

    def on_configure(self, plugin_configuration_size: int) -> bool:
        return bool(self._plugin().on_plugin_start(plugin_configuration_size))

    def on_done(self) -> bool:
        return bool(self._plugin().on_plugin_done())

    def on_tick(self) -> None:
        self._plugin().on_tick()

    def on_queue_ready(self, queue_id: int) -> None:
        self._plugin().on_queue_ready(queue_id)

    def on_request_headers(self, context_id: int, num_headers: int, end_of_stream: bool) -> Action:
        return Action(self._http(context_id).on_http_request_headers(num_headers, end_of_stream))

    def on_request_body(self, context_id: int, body_size: int, end_of_stream: bool) -> Action:
        return Action(self._http(context_id).on_http_request_body(body_size, end_of_stream))

    def on_request_trailers(self, context_id: int, num_trailers: int) -> Action:
        return Action(self._http(context_id).on_http_request_trailers(num_trailers))

    def on_response_headers(self, context_id: int, num_headers: int, end_of_stream: bool) -> Action:
        return Action(self._http(context_id).on_http_response_headers(num_headers, end_of_stream))

    def on_response_body(self, context_id: int, body_size: int, end_of_stream: bool) -> Action:
        return Action(self._http(context_id).on_http_response_body(body_size, end_of_stream))

    def on_response_trailers(self, context_id: int, num_trailers: int) -> Action:
        return Action(self._http(context_id).on_http_response_trailers(num_trailers))

    def on_new_connection(self, context_id: int) -> Action:
        return Action(self._tcp(context_id).on_new_connection())

    def on_downstream_data(self, context_id: int, data_size: int, end_of_stream: bool) -> Action:
        return Action(self._tcp(context_id).on_downstream_data(data_size, end_of_stream))

    def on_upstream_data(self, context_id: int, data_size: int, end_of_stream: bool) -> Action:
        return Action(self._tcp(context_id).on_upstream_data(data_size, end_of_stream))

    def on_downstream_connection_close(self, context_id: int, peer_type: PeerType) -> None:
        self._tcp(context_id).on_downstream_close(PeerType(peer_type))

    def on_upstream_connection_close(self, context_id: int, peer_type: PeerType) -> None:
        self._tcp(context_id).on_upstream_close(PeerType(peer_type))

    def on_log(self, context_id: int) -> None:
        """Tell a stream context it is done; unknown ids are ignored."""
        if context_id in self.tcp_contexts:
            self._tcp(context_id).on_stream_done()
        elif context_id in self.http_contexts:
            self._http(context_id).on_http_stream_done()

    def on_delete(self, context_id: int) -> None:
        self.context_roots.pop(context_id, None)
        if context_id in self.tcp_contexts:
            del self.tcp_contexts[context_id]
        elif context_id in self.http_contexts:
            del self.http_contexts[context_id]
        elif context_id in self.plugin_contexts:
            del self.plugin_contexts[context_id]

    def register_http_callout(self, callout_id: int, callback: CalloutCallback) -> None:
        """Remember the callback of an HTTP call made by the active context."""
        self._callouts[callout_id] = _Callout(callback, self.active_context_id)

    def on_http_call_response(
        self, callout_id: int, num_headers: int, body_size: int, num_trailers: int
    ) -> None:
        """Run the callback of a finished HTTP call in its caller's context."""
        try:
            callout = self._callouts.pop(callout_id)
        except KeyError:
            raise KeyError(f"invalid callout id: {callout_id}") from None
        self.active_context_id = callout.caller_context_id
        callout.callback(num_headers, body_size, num_trailers)

    def reset(self) -> None:
        """Forget every context and callback."""
        self._clear()
        self.active_context_id = 0
        self.vm_context = VMContext()