"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import chat, connections, generation, products, settings, sync

__all__ = [
    "chat",
    "connections",
    "generation",
    "products",
    "settings",
    "sync",
]
