from proxyemu.context import VMContext
from proxyemu.option import EmulatorOption


class _MyVM(VMContext):
    pass


def test_defaults():
    option = EmulatorOption()
    assert option.plugin_configuration == b""
    assert option.vm_configuration == b""
    assert type(option.vm_context) is VMContext
    assert option.properties == {}


def test_chaining_returns_same_option():
    option = EmulatorOption()
    vm = _MyVM()
    result = (
        option.with_vm_context(vm)
        .with_plugin_configuration(b"plugin")
        .with_vm_configuration(b"vm")
    )
    assert result is option
    assert option.vm_context is vm
    assert option.plugin_configuration == b"plugin"
    assert option.vm_configuration == b"vm"


def test_property_is_overwritten():
    path = ["route_metadata", "filter_metadata", "hello"]
    option = EmulatorOption().with_property(path, b"world").with_property(path, b"again")
    assert option.properties == {tuple(path): b"again"}


def test_distinct_properties_are_kept():
    option = EmulatorOption().with_property(["a"], b"1").with_property(["a", "b"], b"2")
    assert option.properties[("a",)] == b"1"
    assert option.properties[("a", "b")] == b"2"


def test_options_do_not_share_state():
    first = EmulatorOption().with_property(["x"], b"1")
    second = EmulatorOption()
    assert ("x",) in first.properties
    assert second.properties == {}