"""Multi-agent pull-request review orchestrator."""

__version__ = "0.1.0"
