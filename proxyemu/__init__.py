"""In-process host emulator for unit testing proxy filter plugins written as Python context classes."""

__version__ = "0.1.0"

__all__ = ["context", "emulator", "http", "network", "option", "root", "types", "vm"]