"""VOCALMERGE — vocal take + backing track merge service with performance scoring."""

__version__ = "0.1.0"
