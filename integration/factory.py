"""
설정(integration.yaml)으로 Services 생성

integration.yaml 예시:
    integration:
      search:
        type: typesense          # typesense | memory
        base_url: http://localhost:8108
        api_key: xyz
        collection: jobs
      mail:
        type: logging
        sender: no-reply@example.com
      storage:
        type: local
        root: ./data/storage
        base_url: http://localhost:8000/files
      metadata:
        database: default
      uploads:
        upload_dir: uploads
        temp_file_ttl_seconds: 3600
        max_file_size_mb: 10
"""

import logging
from pathlib import Path
from typing import Any

from database.registry import DatabaseRegistry
from integration.mail import LoggingMailTransport
from integration.metadata import SQLiteFileMetadataRepository
from integration.search import InMemorySearchStore, TypesenseSearchStore
from integration.services import Services, UploadSettings, DEFAULT_ALLOWED_MIME_TYPES
from integration.storage import LocalBlobStorage

logger = logging.getLogger(__name__)


def build_upload_settings(config: dict[str, Any]) -> UploadSettings:
    uploads = config.get("integration", {}).get("uploads", {}) or {}
    return UploadSettings(
        upload_dir=Path(uploads.get("upload_dir", "uploads")),
        temp_file_ttl_seconds=uploads.get("temp_file_ttl_seconds", 3600),
        max_file_size_mb=uploads.get("max_file_size_mb", 10),
        allowed_mime_types=tuple(uploads.get("allowed_mime_types") or DEFAULT_ALLOWED_MIME_TYPES),
    )


async def build_services(config: dict[str, Any]) -> Services:
    """
    Services 생성 (metadata 저장소가 사용할 DB는 미리 DatabaseRegistry에 등록되어 있어야 함)
    """
    integration = config.get("integration", {}) or {}

    search_cfg = integration.get("search", {}) or {}
    if search_cfg.get("type", "memory") == "typesense":
        search = TypesenseSearchStore(
            base_url=search_cfg["base_url"],
            api_key=search_cfg["api_key"],
            collection=search_cfg.get("collection", "jobs"),
            timeout_seconds=search_cfg.get("timeout_seconds", 10.0),
        )
    else:
        logger.warning("Using in-memory search store, documents are not persisted")
        search = InMemorySearchStore()

    mail_cfg = integration.get("mail", {}) or {}
    mail = LoggingMailTransport(sender=mail_cfg.get("sender", "no-reply@localhost"))

    storage_cfg = integration.get("storage", {}) or {}
    storage = LocalBlobStorage(
        root=storage_cfg.get("root", "./data/storage"),
        base_url=storage_cfg.get("base_url"),
    )

    metadata_cfg = integration.get("metadata", {}) or {}
    metadata = SQLiteFileMetadataRepository(DatabaseRegistry.get(metadata_cfg.get("database", "default")))
    await metadata.initialize()

    return Services(
        search=search,
        mail=mail,
        storage=storage,
        metadata=metadata,
        uploads=build_upload_settings(config),
    )
