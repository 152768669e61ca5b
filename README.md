# proxyemu

`proxyemu` is an in-process host emulator for testing proxy filter plugins
written as Python classes. A plugin is a set of contexts: one VM context,
plugin contexts, and one HTTP or TCP context per stream. The emulator plays
the part of the proxy. It calls the plugin's lifecycle callbacks and keeps the
state that a real host would hold, so a test can inspect it afterwards:

- request and response headers, bodies and trailers
- local responses the plugin sent
- HTTP callouts and their responses
- shared data and shared queues
- metrics
- logs, per level
- properties

## Installing

```
pip install proxyemu
```

The package has no dependencies beyond the standard library. To run the test
suite, install the `test` extra and run pytest:

```
pip install "proxyemu[test]"
pytest
```

## Modules

- `proxyemu.types`: the enums `Action`, `PeerType`, `Status`, `LogLevel`,
  `MetricType`, `BufferType`, `MapType`, `StreamType`; the exception
  `HostStatusError` and its subclasses; `status_to_error`.
- `proxyemu.context`: the base contexts `VMContext`, `PluginContext`,
  `TcpContext` and `HttpContext`.
- `proxyemu.vm`: `VMState`, which holds the plugin's contexts and routes
  events to them.
- `proxyemu.option`: `EmulatorOption`.
- `proxyemu.root`: `RootHost` (logs, queues, shared data, metrics, callouts,
  foreign functions) and `HttpCalloutAttribute`.
- `proxyemu.http`: `HttpHost` and `LocalHttpResponse`.
- `proxyemu.network`: `NetworkHost`.
- `proxyemu.emulator`: `HostEmulator` and `new_host_emulator`.

## Writing a plugin

Subclass the contexts in `proxyemu.context` and override the callbacks you
need. Stream callbacks return an `Action`; `on_vm_start` and
`on_plugin_start` return a bool.

The defaults:

- `VMContext.new_plugin_context` returns a plain `PluginContext`.
- `PluginContext` creates no stream contexts unless it is given
  `http_context_factory` or `tcp_context_factory` (each called with the new
  context id). Its `on_tick` counts calls in `tick_count`, and
  `on_queue_ready` appends queue ids to `ready_queues`.
- `HttpContext` and `TcpContext` callbacks return `Action.CONTINUE`.
  `TcpContext` records the closing peer in `downstream_closed_by` and
  `upstream_closed_by`.

Creating a stream context for a plugin context that returns `None` from both
`new_http_context` and `new_tcp_context` raises `ValueError`.

```python
from proxyemu.context import HttpContext, PluginContext, VMContext
from proxyemu.types import Action


class MyHttp(HttpContext):
    def on_http_request_body(self, body_size, end_of_stream):
        if not end_of_stream:
            return Action.PAUSE  # keep buffering
        return Action.CONTINUE


class MyVM(VMContext):
    def new_plugin_context(self, context_id):
        return PluginContext(http_context_factory=lambda _id: MyHttp())
```

Contexts are not handed a host object. A plugin that makes host calls, such
as `log`, `get_buffer_bytes`, `add_header_map_value`, `http_call` or
`set_shared_data`, keeps a reference to the emulator and calls those methods
on it. Host calls act on the active context, which the emulator sets before
each callback and which `set_effective_context` changes.

## Driving it from a test

Build an `EmulatorOption` and pass it to `new_host_emulator`, which also
creates the plugin context (id 1). `HostEmulator` is a context manager;
leaving the `with` block calls `reset`, which drops every context.

```python
from proxyemu.emulator import new_host_emulator
from proxyemu.option import EmulatorOption
from proxyemu.types import Action

option = (
    EmulatorOption()
    .with_vm_context(MyVM())
    .with_plugin_configuration(b'{"key": "value"}')
)

with new_host_emulator(option) as host:
    assert host.start_plugin()
    ctx = host.initialize_http_context()

    assert host.call_on_request_body(ctx, b"11111", False) is Action.PAUSE
    assert host.call_on_request_body(ctx, b"22222", True) is Action.CONTINUE
    assert host.get_current_request_body(ctx) == b"1111122222"

    host.complete_http_context(ctx)
```

While a plugin returns `Action.PAUSE` from a body callback, the body is
buffered and the next chunk is appended to it; `Action.CONTINUE` clears the
buffer. Header keys are stored lower-cased.

## What the emulator provides

`HostEmulator` defines the buffer, header-map, effective-context and property
calls itself; every other public method of its `root`, `http` and `network`
parts can be called on the emulator directly.

- HTTP streams
  - `initialize_http_context`
  - `call_on_request_headers`, `call_on_request_body`, `call_on_request_trailers`
  - `call_on_response_headers`, `call_on_response_body`, `call_on_response_trailers`
  - `complete_http_context`
  - inspection: `get_current_http_stream_action`, `get_current_request_headers`,
    `get_current_response_headers`, `get_current_request_body`,
    `get_current_response_body`, `get_sent_local_response`
- TCP streams
  - `initialize_connection` (returns the context id and the plugin's action)
  - `call_on_downstream_data`, `call_on_upstream_data`
  - `close_downstream_connection`, `close_upstream_connection`
  - `complete_connection`
- The plugin and the VM
  - `start_vm`, `start_plugin`, `finish_vm`
  - `tick`, `get_tick_period`
- Callouts
  - `get_callout_attributes_from_context`
  - `call_on_http_call_response`
- Queues and metrics
  - `get_queue_size`
  - `get_counter_metric`, `get_gauge_metric`, `get_histogram_metric`
- Logs, one accessor per level
  - `get_trace_logs`, `get_debug_logs`, `get_info_logs`
  - `get_warn_logs`, `get_error_logs`, `get_critical_logs`
- Properties
  - `get_property`, `set_property`, and `EmulatorOption.with_property`;
    paths are sequences of strings
- Foreign functions
  - `register_foreign_function`, `call_foreign_function`

## Errors

When a host call fails, the emulator raises a subclass of `HostStatusError`
from `proxyemu.types`: `NotFoundError`, `BadArgumentError`, `EmptyError`,
`CasMismatchError`, `InternalFailureError` or `UnimplementedError`.
`status_to_error` turns a raw `Status` value into the matching exception, or
`None` for `Status.OK`. Unknown context or callout ids raise `KeyError`;
buffer or map types a part does not handle raise `ValueError`; asking for a
metric of the wrong type raises `ValueError`, and of an unknown name
`KeyError`.

## What it does not do

- It runs Python plugin classes in the same process; it does not load or
  execute compiled WebAssembly modules.
- It has one plugin context only.
- It has no Redis calls, no shared-queue resolution by VM id, no stream
  closing and no gRPC calls.
- Only HTTP bodies can be written with `set_buffer_bytes`.