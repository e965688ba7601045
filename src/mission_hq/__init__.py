"""Task-orchestration engine for multi-agent missions."""

__version__ = "0.1.0"
