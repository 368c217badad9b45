from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from hirebit.db.schema import SchemaFeatures, resolve_schema_features
from hirebit.db.session import engine, get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_schema_features(request: Request) -> SchemaFeatures:
    features = getattr(request.app.state, "schema_features", None)
    if features is None:
        features = resolve_schema_features(engine)
        request.app.state.schema_features = features
    return features
