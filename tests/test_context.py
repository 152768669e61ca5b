from proxyemu.context import HttpContext, PluginContext, TcpContext, VMContext
from proxyemu.types import Action, PeerType


def test_default_vm_context():
    vm = VMContext()
    assert vm.on_vm_start(0) is True
    plugin = vm.new_plugin_context(1)
    assert type(plugin) is PluginContext
    assert plugin.on_plugin_start(0) is True


def test_default_plugin_context_creates_no_streams():
    plugin = PluginContext()
    assert plugin.on_plugin_done() is True
    assert plugin.new_tcp_context(2) is None
    assert plugin.new_http_context(2) is None


def test_default_tcp_context_continues():
    tcp = TcpContext()
    assert tcp.on_new_connection() is Action.CONTINUE
    assert tcp.on_downstream_data(5, False) is Action.CONTINUE
    assert tcp.on_upstream_data(5, True) is Action.CONTINUE
    assert tcp.on_downstream_close(PeerType.LOCAL) is None
    assert tcp.on_stream_done() is None


def test_default_http_context_continues():
    http = HttpContext()
    assert http.on_http_request_headers(1, False) is Action.CONTINUE
    assert http.on_http_request_body(1, True) is Action.CONTINUE
    assert http.on_http_request_trailers(1) is Action.CONTINUE
    assert http.on_http_response_headers(1, False) is Action.CONTINUE
    assert http.on_http_response_body(1, True) is Action.CONTINUE
    assert http.on_http_response_trailers(1) is Action.CONTINUE
    assert http.on_http_stream_done() is None


def test_subclass_overrides_only_what_it_needs():
    class Pausing(HttpContext):
        def on_http_request_body(self, body_size, end_of_stream):
            return Action.CONTINUE if end_of_stream else Action.PAUSE

    assert HttpContext().on_http_request_body(3, False) is Action.CONTINUE
    ctx = Pausing()
    assert ctx.on_http_request_body(3, False) is Action.PAUSE
    assert ctx.on_http_request_body(3, True) is Action.CONTINUE
    assert ctx.on_http_response_body(3, False) is Action.CONTINUE


def test_plugin_subclass_creates_http_context():
    class Plugin(PluginContext):
        def new_http_context(self, context_id):
            return HttpContext()

    class VM(VMContext):
        def new_plugin_context(self, context_id):
            return Plugin()

    assert VMContext().new_plugin_context(1).new_http_context(2) is None
    http = VM().new_plugin_context(1).new_http_context(2)
    assert http.on_http_request_headers(0, True) is Action.CONTINUE