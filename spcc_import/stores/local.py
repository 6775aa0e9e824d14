"""
File-backed implementations of the external stores.

Used by the CLI and tests: facilities and tenant settings live in JSON files,
stored plans in a directory tree.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from spcc_import.config import get_settings
from spcc_import.models import CandidateEntity
from spcc_import.stores.base import EntityStore, ObjectStorage, TenantConfigStore
from spcc_import.utils.errors import (
    ConfigurationError,
    EntityStoreReadError,
    EntityUpdateError,
    StorageWriteError,
)
from spcc_import.utils.logging import get_logger

logger = get_logger(__name__)

PLAN_REFERENCE_FIELD = "spcc_plan_url"
PLAN_DATE_FIELD = "spcc_pe_stamp_date"


class LocalObjectStorage(ObjectStorage):
    """Store objects under ``<root>/<bucket>/<key>``."""

    def __init__(self, root: Union[str, Path], bucket: str = "spcc-plans", base_url: Optional[str] = None) -> None:
        self.root = Path(root)
        self.bucket = bucket
        self.base_url = base_url.rstrip("/") if base_url else None

    def _path_for(self, key: str) -> Path:
        bucket_dir = (self.root / self.bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise StorageWriteError(key, "key escapes the bucket")
        return path

    def public_url(self, key: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{self.bucket}/{key}"
        return self._path_for(key).as_uri()

    async def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        path = self._path_for(key)
        if path.exists():
            raise StorageWriteError(key, "object already exists")

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StorageWriteError(key, str(e))

        logger.debug(f"Stored {key} ({len(content)} bytes)", extra={"content_type": content_type})
        return self.public_url(key)


class JsonEntityStore(EntityStore):
    """
    Facilities kept in a JSON file: either a list of records or
    ``{tenant_id: [records]}``.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> Any:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise EntityStoreReadError(f"Facility file not found: {self.path}")
        except json.JSONDecodeError as e:
            raise EntityStoreReadError(f"Facility file is not valid JSON: {e}")

    def _save(self, data: Any) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.path)

    @staticmethod
    def _records(data: Any, tenant_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            if tenant_id is not None:
                return data.get(tenant_id, [])
            return [record for records in data.values() for record in records]
        raise EntityStoreReadError("Facility file must hold a list or a mapping of tenant lists")

    async def list_candidates(self, tenant_id: str) -> List[CandidateEntity]:
        data = await asyncio.to_thread(self._load)
        candidates = []
        for record in self._records(data, tenant_id):
            try:
                candidates.append(
                    CandidateEntity(
                        id=str(record["id"]),
                        name=record["name"],
                        status=record.get("status") or "active",
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed facility record: {e}")
        logger.info(f"Loaded {len(candidates)} facilities", extra={"tenant_id": tenant_id})
        return candidates

    async def update_plan(self, entity_id: str, plan_reference: str, plan_date: str) -> None:
        async with self._lock:
            try:
                data = await asyncio.to_thread(self._load)
                record = next(
                    (r for r in self._records(data) if str(r.get("id")) == entity_id),
                    None,
                )
                if record is None:
                    raise EntityUpdateError(entity_id, "facility not found")
                record[PLAN_REFERENCE_FIELD] = plan_reference
                record[PLAN_DATE_FIELD] = plan_date
                await asyncio.to_thread(self._save, data)
            except EntityStoreReadError as e:
                raise EntityUpdateError(entity_id, e.message)
            except OSError as e:
                raise EntityUpdateError(entity_id, str(e))


class JsonTenantConfigStore(TenantConfigStore):
    """
    Tenant settings in a JSON file, ``{tenant_id: {"spcc_extraction_config": {...}}}``.
    A missing file means no tenant has a config.
    """

    CONFIG_KEY = "spcc_extraction_config"

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    async def get_extraction_config(self, tenant_id: str) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read tenant settings {self.path}: {e}")
        tenant = data.get(tenant_id) if isinstance(data, dict) else None
        if not isinstance(tenant, dict):
            return None
        return tenant.get(self.CONFIG_KEY)


def create_entity_store() -> JsonEntityStore:
    return JsonEntityStore(get_settings().entity_store_path)


def create_object_storage() -> LocalObjectStorage:
    settings = get_settings()
    return LocalObjectStorage(settings.storage_dir, settings.storage_bucket, settings.storage_base_url)


def create_tenant_config_store() -> Optional[JsonTenantConfigStore]:
    settings = get_settings()
    if settings.tenant_config_path is None:
        return None
    return JsonTenantConfigStore(settings.tenant_config_path)
