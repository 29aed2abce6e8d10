"""Domain services for the relational core.

Exports:
    - RowStore: Copy-on-write table storage
    - ConstraintChecker: Key, reference and restrict checks
    - IndexManager: Secondary, unique and partial indexes
    - StorageEngine: Global write scope, drafts and publish
    - ViewEngine: Virtual and materialized views
    - TransactionManager: Overlay-and-validate transactions
"""

from relstore.domain.services.constraint_checker import ConstraintChecker
from relstore.domain.services.index_manager import (
    IndexDefinition,
    IndexManager,
    IndexMetadata,
    IndexStats,
    SecondaryIndex,
)
from relstore.domain.services.row_store import RowStore, Sequence
from relstore.domain.services.storage_engine import StorageEngine, Workspace
from relstore.domain.services.transaction_manager import TransactionManager, TransactionStats
from relstore.domain.services.view_engine import (
    MaterializedSnapshot,
    QueryRunner,
    ViewDefinition,
    ViewEngine,
    ViewInfo,
    referenced_relations,
)

__all__ = [
    "RowStore",
    "Sequence",
    "ConstraintChecker",
    "IndexDefinition",
    "IndexManager",
    "IndexMetadata",
    "IndexStats",
    "SecondaryIndex",
    "StorageEngine",
    "Workspace",
    "TransactionManager",
    "TransactionStats",
    "ViewEngine",
    "ViewDefinition",
    "MaterializedSnapshot",
    "ViewInfo",
    "QueryRunner",
    "referenced_relations",
]
