from .client import CathedisClient
from .payload import build_delivery_request

__all__ = ["CathedisClient", "build_delivery_request"]
