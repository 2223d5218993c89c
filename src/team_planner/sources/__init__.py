from .file_source import FileTaskSource
from .interfaces import RawRecord, TaskSource
from .memory import InMemoryTaskSource

__all__ = ["FileTaskSource", "InMemoryTaskSource", "RawRecord", "TaskSource"]
