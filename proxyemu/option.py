"""Options that configure a host emulator before it starts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from proxyemu.context import VMContext


@dataclass
class EmulatorOption:
    """Configuration handed to a new host emulator.

    The ``with_*`` methods update the option in place and return it, so they
    can be chained.
    """

    plugin_configuration: bytes = b""
    vm_configuration: bytes = b""
    vm_context: VMContext = field(default_factory=VMContext)
    properties: dict[tuple[str, ...], bytes] = field(default_factory=dict)

    def with_vm_context(self, context: VMContext) -> EmulatorOption:
        """Use ``context`` as the plugin's VM context."""
        self.vm_context = context
        return self

    def with_plugin_configuration(self, data: bytes) -> EmulatorOption:
        """Set the plugin configuration."""
        self.plugin_configuration = bytes(data)
        return self

    def with_vm_configuration(self, data: bytes) -> EmulatorOption:
        """Set the VM configuration."""
        self.vm_configuration = bytes(data)
        return self

    def with_property(self, path: Iterable[str], value: bytes) -> EmulatorOption:
        """Set a property, overwriting any earlier value at the same path."""
        self.properties[tuple(path)] = bytes(value)
        return self