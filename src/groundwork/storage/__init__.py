"""Storage layer: knowledge passage stores."""

from groundwork.storage.base import PassageStore, StorageConfig, StorageError


def create_passage_store(config: StorageConfig) -> PassageStore:
    """Factory function to create passage stores based on configuration.

    Args:
        config: Storage configuration with store_type

    Returns:
        Passage store (call ``initialize()`` before use)

    Raises:
        ValueError: If store_type is unknown

    Example:
        config = StorageConfig(
            store_type="sqlite",
            connection_string="sqlite:///~/.groundwork/knowledge.db",
        )
        store = create_passage_store(config)
        await store.initialize()
    """
    store_type = config.store_type.lower()

    if store_type == "memory":
        from groundwork.storage.memory import InMemoryPassageStore

        return InMemoryPassageStore(config)

    elif store_type == "sqlite":
        from groundwork.storage.sqlite import SQLitePassageStore

        return SQLitePassageStore(config)

    else:
        raise ValueError(
            f"Unknown passage store type: '{store_type}'. "
            f"Supported types: memory, sqlite"
        )


__all__ = [
    "PassageStore",
    "StorageConfig",
    "StorageError",
    "create_passage_store",
]
