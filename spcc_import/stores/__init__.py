"""
External collaborators: facility store, object storage, tenant settings.
"""

from spcc_import.stores.base import EntityStore, ObjectStorage, TenantConfigStore
from spcc_import.stores.local import JsonEntityStore, JsonTenantConfigStore, LocalObjectStorage

__all__ = [
    "EntityStore",
    "JsonEntityStore",
    "JsonTenantConfigStore",
    "LocalObjectStorage",
    "ObjectStorage",
    "TenantConfigStore",
]
