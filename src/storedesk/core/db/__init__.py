from .migrations import apply_migrations, connect_db
from .repository import StoreRepository

__all__ = ["connect_db", "apply_migrations", "StoreRepository"]
