"""Data storage configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from importflow.common.storage import get_data_dir, get_database_uri, get_upload_dir


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    upload_dir: Path

    def ensure_upload_dir(self) -> Path:
        upload_dir = self.upload_dir.expanduser().resolve()
        upload_dir.mkdir(parents=True, exist_ok=True)
        return upload_dir


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def get_storage_config() -> StorageConfig:
    return StorageConfig(data_dir=get_data_dir(), upload_dir=get_upload_dir())


def get_database_config() -> DatabaseConfig:
    return DatabaseConfig(uri=get_database_uri())
