from spa_scheduler.store.base import SchedulerStore
from spa_scheduler.store.memory_store import MemoryStore
from spa_scheduler.store.sql_store import SqlStore

__all__ = ["SchedulerStore", "MemoryStore", "SqlStore"]
