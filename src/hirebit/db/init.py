from __future__ import annotations

from pathlib import Path

from hirebit.config import get_settings
from hirebit.db.base import Base
from hirebit.db.schema import SchemaFeatures, resolve_schema_features
from hirebit.db.session import engine
from hirebit.db import models  # noqa: F401


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [settings.data_dir, settings.storage_dir]
    if settings.database_url.startswith("sqlite:///"):
        db_path = Path(settings.database_url.removeprefix("sqlite:///"))
        paths.append(db_path.parent)
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> SchemaFeatures:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    resolve_schema_features.cache_clear()
    return resolve_schema_features(engine)
