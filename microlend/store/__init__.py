"""Data stores for lending entities."""

from microlend.store.lending import LendingDataStore, LendingStore
from microlend.store.postgres import PostgresLendingStore

__all__ = ["LendingDataStore", "LendingStore", "PostgresLendingStore"]
