# Import all models to ensure they are registered with SQLAlchemy
from . import booking, service

__all__ = [
    "booking",
    "service",
]
