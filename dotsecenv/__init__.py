"""Secret vault operations, configuration and algorithm policy for signed, encrypted vaults."""

__version__ = "0.1.0"

__all__ = [
    "algorithms",
    "config",
    "xdg",
    "session",
    "vaults",
    "secrets",
    "sharing",
    "validation",
]