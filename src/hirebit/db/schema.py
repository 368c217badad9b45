from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "0001_initial_schema"

REQUIRED_TABLES = ("companies", "job_postings", "applications", "reports", "job_schedules", "audit_logs")


@dataclass(frozen=True, slots=True)
class SchemaFeatures:
    """Optional columns available in the connected database.

    Older deployments ran without some of these columns. Resolved once per process
    and passed to the code paths that would otherwise branch on them.
    """

    version: str
    tables_present: bool
    application_external_id: bool
    application_phone: bool
    application_interview: bool
    job_webhook_secret: bool
    job_responsibilities: bool

    @property
    def webhook_supported(self) -> bool:
        return self.tables_present and self.application_external_id and self.job_webhook_secret


def _column_names(inspector, table: str) -> set[str]:
    try:
        return {column["name"] for column in inspector.get_columns(table)}
    except NoSuchTableError:
        return set()


@lru_cache(maxsize=4)
def resolve_schema_features(engine: Engine) -> SchemaFeatures:
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        logger.warning("Database is missing tables %s; run `hirebit init`", ", ".join(missing))

    application_columns = _column_names(inspector, "applications")
    job_columns = _column_names(inspector, "job_postings")
    features = SchemaFeatures(
        version=SCHEMA_VERSION,
        tables_present=not missing,
        application_external_id="external_id" in application_columns,
        application_phone="phone" in application_columns,
        application_interview={"interview_time", "interview_link", "interview_status"} <= application_columns,
        job_webhook_secret="webhook_secret" in job_columns,
        job_responsibilities="responsibilities" in job_columns,
    )
    logger.info("Resolved schema contract %s", features)
    return features
