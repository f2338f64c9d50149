# Import all models to ensure they are registered with SQLAlchemy
from . import appointment, shop

__all__ = [
    "appointment",
    "shop",
]
