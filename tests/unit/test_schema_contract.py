from sqlalchemy import create_engine, text

from hirebit.core.inbound import InboundApplicationError, InboundApplicationService
from hirebit.db.schema import SCHEMA_VERSION, resolve_schema_features
from hirebit.db.session import engine


def test_current_schema_supports_every_optional_feature() -> None:
    features = resolve_schema_features(engine)

    assert features.version == SCHEMA_VERSION
    assert features.tables_present
    assert features.webhook_supported
    assert features.application_phone
    assert features.application_interview
    assert features.job_responsibilities


def test_legacy_schema_without_intake_columns(tmp_path) -> None:
    legacy = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with legacy.begin() as conn:
        for table in ("companies", "reports", "job_schedules", "audit_logs"):
            conn.execute(text(f"CREATE TABLE {table} (id VARCHAR(36) PRIMARY KEY)"))
        conn.execute(text("CREATE TABLE job_postings (id VARCHAR(36) PRIMARY KEY, title VARCHAR(255))"))
        conn.execute(text("CREATE TABLE applications (id VARCHAR(36) PRIMARY KEY, email VARCHAR(255))"))

    features = resolve_schema_features(legacy)

    assert features.tables_present
    assert not features.webhook_supported
    assert not features.application_phone
    assert not features.application_interview
    assert not features.job_responsibilities
    legacy.dispose()


def test_empty_database_reports_missing_tables(tmp_path) -> None:
    empty = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    features = resolve_schema_features(empty)

    assert not features.tables_present
    assert not features.webhook_supported
    empty.dispose()


def test_webhook_is_refused_when_schema_lacks_support(db, tmp_path) -> None:
    empty = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    service = InboundApplicationService(db, resolve_schema_features(empty))

    try:
        service.receive("job-1", "secret", {"email": "a@x.io"})
    except InboundApplicationError as exc:
        assert exc.status_code == 503
    else:
        raise AssertionError("expected the webhook to be refused")
    empty.dispose()
