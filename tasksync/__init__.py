"""Two-way synchronization of markdown task lists with a remote task service."""

__version__ = "0.1.0"
