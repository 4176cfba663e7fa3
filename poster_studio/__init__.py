"""Generation job orchestrator for AI poster creation."""

__version__ = "1.0.0"
