"""Platform datastore access."""

from dev_stack_manager.integrations.datastore.mongo_shell import (
    DatastoreError,
    MongoShellClient,
)

__all__ = ["DatastoreError", "MongoShellClient"]
