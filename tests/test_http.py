import pytest

from proxyemu.context import HttpContext, PluginContext, VMContext
from proxyemu.http import HttpHost, LocalHttpResponse
from proxyemu.types import (
    Action,
    BadArgumentError,
    BufferType,
    MapType,
    NotFoundError,
    StreamType,
)
from proxyemu.vm import PLUGIN_CONTEXT_ID, VMState


class _Plugin(VMContext):
    def __init__(self, factory):
        self.factory = factory

    def new_plugin_context(self, context_id):
        factory = self.factory

        class _Root(PluginContext):
            def new_http_context(self, context_id):
                return factory()

        return _Root()


def _make_host(factory=HttpContext):
    vm = VMState(_Plugin(factory))
    vm.create_context(PLUGIN_CONTEXT_ID, 0)
    return HttpHost(vm)


def _activate(host, context_id):
    host.vm.active_context_id = context_id


def test_first_context_id_follows_plugin_context():
    host = _make_host()
    first = host.initialize_http_context()
    second = host.initialize_http_context()
    assert first == PLUGIN_CONTEXT_ID + 1
    assert second == first + 1


def test_request_headers_are_lowercased_and_visible():
    seen = {}

    class Reader(HttpContext):
        def on_http_request_headers(self, num_headers, end_of_stream):
            seen["count"] = num_headers
            seen["value"] = host.get_header_map_value(MapType.HTTP_REQUEST_HEADERS, "X-Key")
            return Action.PAUSE

    host = _make_host(Reader)
    cid = host.initialize_http_context()
    action = host.call_on_request_headers(cid, [("X-Key", "  value  "), ("Other", "v")], False)
    assert action == Action.PAUSE
    assert host.get_current_http_stream_action(cid) == Action.PAUSE
    assert seen == {"count": 2, "value": "value"}
    assert host.get_current_request_headers(cid) == [("x-key", "  value  "), ("other", "v")]


def test_empty_header_value_is_not_found():
    host = _make_host()
    cid = host.initialize_http_context()
    host.call_on_response_headers(cid, [("empty", "   ")], False)
    _activate(host, cid)
    with pytest.raises(NotFoundError):
        host.get_header_map_value(MapType.HTTP_RESPONSE_HEADERS, "empty")
    with pytest.raises(NotFoundError):
        host.get_header_map_value(MapType.HTTP_RESPONSE_HEADERS, "missing")


def test_add_replace_remove_headers():
    host = _make_host()
    cid = host.initialize_http_context()
    host.call_on_request_headers(cid, [("a", "1"), ("b", "2")], False)
    _activate(host, cid)
    host.add_header_map_value(MapType.HTTP_REQUEST_HEADERS, "A", "x")
    host.add_header_map_value(MapType.HTTP_REQUEST_HEADERS, "New", "n")
    host.replace_header_map_value(MapType.HTTP_REQUEST_HEADERS, "B", "r")
    host.replace_header_map_value(MapType.HTTP_REQUEST_HEADERS, "c", "c")
    assert host.get_current_request_headers(cid) == [
        ("a", "1x"),
        ("b", "r"),
        ("new", "n"),
        ("c", "c"),
    ]
    host.remove_header_map_value(MapType.HTTP_REQUEST_HEADERS, "B")
    host.remove_header_map_value(MapType.HTTP_REQUEST_HEADERS, "absent")
    assert host.get_current_request_headers(cid) == [("a", "1x"), ("new", "n"), ("c", "c")]


def test_header_pairs_round_trip_with_trailers():
    host = _make_host()
    cid = host.initialize_http_context()
    host.call_on_request_trailers(cid, [("T", "v")])
    _activate(host, cid)
    assert host.get_header_map_pairs(MapType.HTTP_REQUEST_TRAILERS) == [("t", "v")]
    host.set_header_map_pairs(MapType.HTTP_RESPONSE_TRAILERS, [("K", "v1"), ("j", "v2")])
    assert host.get_header_map_pairs(MapType.HTTP_RESPONSE_TRAILERS) == [("k", "v1"), ("j", "v2")]


def test_unsupported_map_type_is_rejected():
    host = _make_host()
    cid = host.initialize_http_context()
    _activate(host, cid)
    with pytest.raises(ValueError):
        host.get_header_map_pairs(MapType.HTTP_CALL_RESPONSE_HEADERS)


@pytest.mark.parametrize(
    "buffered, first_action, logged",
    [(True, Action.PAUSE, "1111122222"), (False, Action.CONTINUE, "22222")],
)
def test_body_buffering(buffered, first_action, logged):
    logs = []

    class Body(HttpContext):
        def _read(self, kind, size, end_of_stream, label):
            if not end_of_stream:
                return Action.PAUSE if buffered else Action.CONTINUE
            body = host.get_buffer_bytes(kind, 0, size)
            logs.append(f"{label} body:{body.decode()}")
            return Action.CONTINUE

        def on_http_request_body(self, body_size, end_of_stream):
            return self._read(BufferType.HTTP_REQUEST_BODY, body_size, end_of_stream, "request")

        def on_http_response_body(self, body_size, end_of_stream):
            return self._read(BufferType.HTTP_RESPONSE_BODY, body_size, end_of_stream, "response")

    host = _make_host(Body)
    cid = host.initialize_http_context()
    assert host.call_on_request_body(cid, b"11111", False) == first_action
    assert host.call_on_request_body(cid, b"22222", True) == Action.CONTINUE
    assert host.call_on_response_body(cid, b"11111", False) == first_action
    assert host.call_on_response_body(cid, b"22222", True) == Action.CONTINUE
    assert f"request body:{logged}" in logs
    assert f"response body:{logged}" in logs


def test_get_buffer_bytes_errors_and_clipping():
    host = _make_host()
    cid = host.initialize_http_context()
    _activate(host, cid)
    with pytest.raises(NotFoundError):
        host.get_buffer_bytes(BufferType.HTTP_REQUEST_BODY, 0, 10)
    host.call_on_request_body(cid, b"abcdef", True)
    assert host.get_buffer_bytes(BufferType.HTTP_REQUEST_BODY, 2, 100) == b"cdef"
    assert host.get_buffer_bytes(BufferType.HTTP_REQUEST_BODY, 1, 2) == b"bc"
    with pytest.raises(BadArgumentError):
        host.get_buffer_bytes(BufferType.HTTP_REQUEST_BODY, 6, 1)
    with pytest.raises(ValueError):
        host.get_buffer_bytes(BufferType.UPSTREAM_DATA, 0, 1)


def test_set_buffer_bytes_modes():
    host = _make_host()
    cid = host.initialize_http_context()
    host.call_on_response_body(cid, b"body", True)
    _activate(host, cid)
    host.set_buffer_bytes(BufferType.HTTP_RESPONSE_BODY, 0, 0, b"pre-")
    assert host.get_current_response_body(cid) == b"pre-body"
    host.set_buffer_bytes(BufferType.HTTP_RESPONSE_BODY, 8, 0, b"-post")
    assert host.get_current_response_body(cid) == b"pre-body-post"
    host.set_buffer_bytes(BufferType.HTTP_RESPONSE_BODY, 0, 13, b"new")
    assert host.get_current_response_body(cid) == b"new"
    with pytest.raises(BadArgumentError):
        host.set_buffer_bytes(BufferType.HTTP_RESPONSE_BODY, 0, 1, b"x")
    with pytest.raises(BadArgumentError):
        host.set_buffer_bytes(BufferType.HTTP_RESPONSE_BODY, 1, 0, b"x")
    assert host.get_current_response_body(cid) == b"new"


def test_send_local_response_and_continue_stream():
    class Deny(HttpContext):
        def on_http_request_headers(self, num_headers, end_of_stream):
            host.send_local_response(403, "denied", b"no", [("X-Reason", "r")], -1)
            return Action.PAUSE

    host = _make_host(Deny)
    cid = host.initialize_http_context()
    assert host.get_sent_local_response(cid) is None
    host.call_on_request_headers(cid, [], True)
    assert host.get_sent_local_response(cid) == LocalHttpResponse(
        status_code=403,
        status_code_detail="denied",
        data=b"no",
        headers=[("x-reason", "r")],
        grpc_status=-1,
    )
    host.continue_stream(StreamType.REQUEST)
    assert host.get_current_http_stream_action(cid) == Action.CONTINUE


def test_complete_http_context_runs_stream_done():
    done = []

    class Tracker(HttpContext):
        def on_http_stream_done(self):
            done.append(True)

    host = _make_host(Tracker)
    cid = host.initialize_http_context()
    host.complete_http_context(cid)
    assert done == [True]
    assert cid not in host.vm.http_contexts


def test_unknown_context_id_raises():
    host = _make_host()
    with pytest.raises(KeyError):
        host.call_on_request_headers(99, [], False)
    with pytest.raises(KeyError):
        host.get_current_request_body(99)