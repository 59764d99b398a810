"""Message source adapters."""

from .eml_source import EmlDirectorySource
from .parser import MessageParser

__all__ = ["EmlDirectorySource", "MessageParser"]
