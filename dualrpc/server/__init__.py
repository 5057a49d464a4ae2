"""Серверная часть: диспетчер входящих payload."""

from .dispatcher import Dispatcher, Reply

__all__ = ["Dispatcher", "Reply"]
