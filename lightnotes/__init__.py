"""Local-first note taking with background sync against a remote object store."""

__version__ = "0.3.0"
