"""Transports that connect the run controller to model endpoints."""

from .openai_chat import ClientSettings, OpenAIChatTransport

__all__ = ["ClientSettings", "OpenAIChatTransport"]
