# backend/stockdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- String relationship targets resolve across apps.

The actual model classes are kept in stockdb/apps/*/models.py.
"""

from .apps.audit import models as audit_models                  # append-only audit log
from .apps.system_config import models as system_config_models  # threshold overrides
from .apps.warehouses import models as warehouse_models          # warehouses + zones
from .apps.inventory import models as inventory_models           # products + ledger
from .apps.batches import models as batch_models                 # lot tracking
from .apps.stock_audit import models as stock_audit_models       # physical counts
from .apps.custody import models as custody_models               # high-value custody

__all__ = [
    "audit_models",
    "system_config_models",
    "warehouse_models",
    "inventory_models",
    "batch_models",
    "stock_audit_models",
    "custody_models",
]
