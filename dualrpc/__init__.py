"""dualrpc: JSON-RPC 2.0 и XML-RPC поверх одного HTTP-эндпоинта."""

from dualrpc.core.protocol import Protocol

__version__ = "0.1.0"

__all__ = ["Protocol", "__version__"]
