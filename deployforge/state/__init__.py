from .store import StateRecord, StateStore, StateStoreError

__all__ = ["StateRecord", "StateStore", "StateStoreError"]
