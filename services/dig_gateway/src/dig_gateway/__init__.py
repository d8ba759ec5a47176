"""DIG content gateway: UDI resolution and verified content delivery."""

__version__ = "0.1.0"
