"""Object storage, model clients and ledger tools for AI agents."""

__version__ = "0.1.0"
__all__ = ["store", "model", "openai", "xai", "ledger"]