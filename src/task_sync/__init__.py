"""task-sync: file-backed task store with last-write-wins conflict resolution."""

__version__ = "0.1.0"
