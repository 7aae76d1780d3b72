"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and a future Alembic env.py) can
import Base and discover all tables via a single import:

    from orderbot.models import Base
"""

from orderbot.db.base import Base
from orderbot.models.binding import BindingRole, UserCurrentWorld, WorldBinding
from orderbot.models.order import OrderAction, OrderHistory, OrderItem
from orderbot.models.world import World, WorldStatus, format_world_id

__all__ = [
    "Base",
    "BindingRole",
    "OrderAction",
    "OrderHistory",
    "OrderItem",
    "UserCurrentWorld",
    "World",
    "WorldBinding",
    "WorldStatus",
    "format_world_id",
]
