"""Plugin-side contexts with default behaviour that plugins override.

A VM context creates plugin contexts; a plugin context creates one TCP or
HTTP context per stream.
"""

from __future__ import annotations

from typing import Callable, Optional

from proxyemu.types import Action, PeerType


class VMContext:
    """Entry point of a plugin; one per virtual machine."""

    vm_configuration_size: int = 0

    def on_vm_start(self, vm_configuration_size: int) -> bool:
        """Called once the VM is created; return False to fail start-up."""
        self.vm_configuration_size = vm_configuration_size
        return self.vm_configuration_size >= 0

    def new_plugin_context(self, context_id: int) -> PluginContext:
        """Create the plugin context for a plugin configuration."""
        return PluginContext()


class PluginContext:
    """One per plugin configuration; creates stream contexts.

    By default no stream contexts are created; pass factories to make the
    plugin serve TCP or HTTP streams without subclassing.
    """

    plugin_configuration_size: int = 0
    tick_count: int = 0
    ready_queues: tuple[int, ...] = ()
    tcp_context_factory: Optional[Callable[[int], "TcpContext"]] = None
    http_context_factory: Optional[Callable[[int], "HttpContext"]] = None

    def __init__(
        self,
        *,
        tcp_context_factory: Optional[Callable[[int], TcpContext]] = None,
        http_context_factory: Optional[Callable[[int], HttpContext]] = None,
    ) -> None:
        self.tcp_context_factory = tcp_context_factory
        self.http_context_factory = http_context_factory

    def on_plugin_start(self, plugin_configuration_size: int) -> bool:
        """Called when the plugin is configured; return False to fail."""
        self.plugin_configuration_size = plugin_configuration_size
        return self.plugin_configuration_size >= 0

    def on_plugin_done(self) -> bool:
        """Called before deletion; return False while work is pending."""
        return True

    def on_queue_ready(self, queue_id: int) -> None:
        """Called when a shared queue has data; records the queue id."""
        self.ready_queues = (*self.ready_queues, queue_id)

    def on_tick(self) -> None:
        """Called every tick period; counts the ticks seen."""
        self.tick_count += 1

    def new_tcp_context(self, context_id: int) -> TcpContext | None:
        """Create a context for a TCP stream, or None if not a TCP plugin."""
        factory = self.tcp_context_factory
        return factory(context_id) if factory is not None else None

    def new_http_context(self, context_id: int) -> HttpContext | None:
        """Create a context for an HTTP stream, or None if not an HTTP plugin."""
        factory = self.http_context_factory
        return factory(context_id) if factory is not None else None


class TcpContext:
    """Handles the events of one TCP stream."""

    downstream_closed_by: Optional[PeerType] = None
    upstream_closed_by: Optional[PeerType] = None

    def on_new_connection(self) -> Action:
        return Action.CONTINUE

    def on_downstream_data(self, data_size: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_downstream_close(self, peer_type: PeerType) -> None:
        """Called when the downstream connection closes; records the peer."""
        self.downstream_closed_by = peer_type

    def on_upstream_data(self, data_size: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_upstream_close(self, peer_type: PeerType) -> None:
        """Called when the upstream connection closes; records the peer."""
        self.upstream_closed_by = peer_type

    def on_stream_done(self) -> None:
        """Called before the host deletes this context."""


class HttpContext:
    """Handles the events of one HTTP stream."""

    def on_http_request_headers(self, num_headers: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_http_request_body(self, body_size: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_http_request_trailers(self, num_trailers: int) -> Action:
        return Action.CONTINUE

    def on_http_response_headers(self, num_headers: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_http_response_body(self, body_size: int, end_of_stream: bool) -> Action:
        return Action.CONTINUE

    def on_http_response_trailers(self, num_trailers: int) -> Action:
        return Action.CONTINUE

    def on_http_stream_done(self) -> None:
        """Called before the host deletes this context."""