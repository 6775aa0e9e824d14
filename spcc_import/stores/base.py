"""
Abstract interfaces for the external collaborators of the import pipeline.

The pipeline reads candidate facilities and tenant extraction config, and
writes stored plan documents plus two facility fields. Everything else about
these systems is owned elsewhere.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from spcc_import.models import CandidateEntity, ExtractionConfig


class EntityStore(ABC):
    """
    Facility records.

    Implementations raise ``EntityStoreReadError`` / ``EntityUpdateError``.
    """

    @abstractmethod
    async def list_candidates(self, tenant_id: str) -> List[CandidateEntity]:
        """
        List facilities of a tenant as match candidates.

        All statuses are returned; the matcher filters ineligible ones.

        Args:
            tenant_id: Tenant (account) identifier

        Returns:
            Candidate facilities

        Raises:
            EntityStoreReadError: If the facilities cannot be read
        """
        pass

    @abstractmethod
    async def update_plan(self, entity_id: str, plan_reference: str, plan_date: str) -> None:
        """
        Point a facility at its newly stored plan.

        Only the plan reference and plan (PE stamp) date fields are written.

        Args:
            entity_id: Facility identifier
            plan_reference: Durable reference (URL or path) of the stored plan
            plan_date: Stamp date, ``YYYY-MM-DD``

        Raises:
            EntityUpdateError: If the update fails
        """
        pass


class ObjectStorage(ABC):
    """Durable object storage for plan documents."""

    @abstractmethod
    async def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        """
        Store an object.

        Args:
            key: Object key, ``<facility-id>/<artifact>-<timestamp>.<ext>``
            content: Object bytes
            content_type: Media type of the object

        Returns:
            Durable reference to the stored object

        Raises:
            StorageWriteError: If the write fails
        """
        pass


class TenantConfigStore(ABC):
    """Per-tenant settings record, read-only for the pipeline."""

    @abstractmethod
    async def get_extraction_config(self, tenant_id: str) -> Optional[dict]:
        """
        Return the raw extraction config record of a tenant, or None.

        Raises:
            ConfigurationError: If the store cannot be read
        """
        pass
