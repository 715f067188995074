"""Storage subpackage - transactional persistence of override records."""
from .override_store import (
    OverrideStore,
    OverrideUnitOfWork,
    InMemoryOverrideStore,
    SQLiteOverrideStore,
)

__all__ = ['OverrideStore', 'OverrideUnitOfWork', 'InMemoryOverrideStore', 'SQLiteOverrideStore']
