"""
Database Layer

Usage:
    from src.database import (
        init_db, create_db_engine, create_session_factory,
        User, ActivityRecord, AnalyticsSnapshot,
        UserRepository, ActivityRepository, AnalyticsSnapshotRepository,
    )

    engine = create_db_engine()
    init_db(engine)
    users = UserRepository(create_session_factory(engine))
    user = users.find_by_username("octocat")
"""

from .models import (
    Base,
    User,
    ActivityRecord,
    AnalyticsSnapshot,
    ContributionLevel,
)

from .session import (
    SessionFactory,
    get_database_url,
    create_db_engine,
    get_engine,
    create_session_factory,
    get_session_factory,
    session_scope,
    init_db,
    check_db_connection,
)

from .repository import (
    UserSortField,
    SortOrder,
    ActivityMetric,
    GroupBy,
    RepositorySort,
    UserFilter,
    sort_column,
    UserRepository,
    ActivityRepository,
    AnalyticsSnapshotRepository,
)

__all__ = [
    # Models
    "Base",
    "User",
    "ActivityRecord",
    "AnalyticsSnapshot",
    "ContributionLevel",
    # Session
    "SessionFactory",
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "create_session_factory",
    "get_session_factory",
    "session_scope",
    "init_db",
    "check_db_connection",
    # Repository
    "UserSortField",
    "SortOrder",
    "ActivityMetric",
    "GroupBy",
    "RepositorySort",
    "UserFilter",
    "sort_column",
    "UserRepository",
    "ActivityRepository",
    "AnalyticsSnapshotRepository",
]
