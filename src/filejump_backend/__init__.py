"""FileJump storage backend for a generic file-synchronization tool."""

__version__ = "0.1.0"
