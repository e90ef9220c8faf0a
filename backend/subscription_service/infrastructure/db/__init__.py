"""
Database Infrastructure Package for the Subscription Service

Exports database utilities and the unit of work.
"""

from subscription_service.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    init_db,
    close_db,
)
from subscription_service.infrastructure.db.unit_of_work import (
    SubscriptionUnitOfWork,
    UnitOfWorkFactory,
    get_unit_of_work,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "init_db",
    "close_db",
    # Unit of work
    "SubscriptionUnitOfWork",
    "UnitOfWorkFactory",
    "get_unit_of_work",
]
