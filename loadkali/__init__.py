"""Load testing tool for TCP and WebSocket servers: option parsing, workers,
statistics and the ``loadkali`` command."""

__version__ = "0.1.0"
__all__ = ["__version__"]