"""Fixed-width batch import orchestrator."""

__version__ = "0.1.0"
