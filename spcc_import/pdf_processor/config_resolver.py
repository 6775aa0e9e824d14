"""
Resolve the tenant's extraction config at the start of a batch.
"""

from typing import Optional

from pydantic import ValidationError

from spcc_import.models import ExtractionConfig
from spcc_import.stores.base import TenantConfigStore
from spcc_import.utils.errors import InvalidExtractionConfigError, SPCCImportError
from spcc_import.utils.logging import get_logger

logger = get_logger(__name__)


class ExtractionConfigResolver:
    """
    Load the optional per-tenant extraction hints.

    Absence of a store, a record, or a valid record all mean "no hints": the
    batch then extracts the whole text. The store is never written.
    """

    def __init__(self, store: Optional[TenantConfigStore] = None) -> None:
        self.store = store

    @staticmethod
    def parse(tenant_id: str, raw: dict) -> ExtractionConfig:
        try:
            return ExtractionConfig.model_validate(raw)
        except ValidationError as e:
            raise InvalidExtractionConfigError(tenant_id, str(e))

    async def resolve(self, tenant_id: str) -> Optional[ExtractionConfig]:
        if self.store is None:
            return None

        try:
            raw = await self.store.get_extraction_config(tenant_id)
            if not raw:
                return None
            config = self.parse(tenant_id, raw)
        except SPCCImportError as e:
            logger.warning(f"Ignoring extraction config: {e.message}", extra={"tenant_id": tenant_id})
            return None

        logger.info(
            f"Using extraction regions: {', '.join(config.fields) or 'none'}",
            extra={"tenant_id": tenant_id},
        )
        return config
