"""Multi-session chat service over a single LLM completion endpoint."""

__version__ = "0.1.0"
