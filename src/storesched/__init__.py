"""Multi-node task scheduler coordinated through a shared SQLite record store."""

__version__ = "0.1.0"
