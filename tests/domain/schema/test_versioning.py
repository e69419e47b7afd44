from __future__ import annotations

from typing import Any
from uuid import uuid4

from importflow.domain.model import SchemaConfig, SchemaVersion
from importflow.domain.schema import SchemaVersioningService, compare
from tests.helpers.pipeline import FakeSchemaVersionRepository, FixedClock, make_dataset

SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"id": {"type": "string", "nullable": False}},
    "required": ["id"],
    "additionalProperties": False,
}
GROWN: dict[str, Any] = {
    **SCHEMA,
    "properties": {**SCHEMA["properties"], "note": {"type": "string", "nullable": True}},
}


def _service(repo: FakeSchemaVersionRepository) -> SchemaVersioningService:
    return SchemaVersioningService(repo, clock=FixedClock())


def test_first_version_is_created_when_auto_approvable() -> None:
    dataset = make_dataset(schema_config=SchemaConfig(auto_approve_non_breaking=True))
    repo = FakeSchemaVersionRepository()
    service = _service(repo)

    decision = service.decide(dataset, SCHEMA)

    assert decision.latest is None
    assert decision.create_version
    assert not decision.requires_approval


def test_identical_schema_reuses_existing_version() -> None:
    dataset = make_dataset()
    existing = SchemaVersion(dataset_id=dataset.id, version_number=1, schema=SCHEMA)
    service = _service(FakeSchemaVersionRepository([existing]))

    decision = service.decide(dataset, SCHEMA)

    assert decision.latest is existing
    assert not decision.create_version
    assert not decision.requires_approval


def test_change_without_auto_approval_requires_approval() -> None:
    dataset = make_dataset()
    existing = SchemaVersion(dataset_id=dataset.id, version_number=1, schema=SCHEMA)
    service = _service(FakeSchemaVersionRepository([existing]))

    decision = service.decide(dataset, GROWN)

    assert decision.requires_approval
    assert not decision.create_version


def test_create_version_appends_next_number() -> None:
    dataset = make_dataset(schema_config=SchemaConfig(auto_approve_non_breaking=True))
    repo = FakeSchemaVersionRepository(
        [SchemaVersion(dataset_id=dataset.id, version_number=1, schema=SCHEMA)]
    )
    service = _service(repo)
    comparison = compare(SCHEMA, GROWN, auto_approve_non_breaking=True)
    job_id = uuid4()

    version = service.create_version(
        dataset,
        schema=GROWN,
        field_metadata={"note": {"occurrences": 1}},
        comparison=comparison,
        import_job_id=job_id,
        auto_approved=True,
    )

    assert version.version_number == 2
    assert version.auto_approved
    assert version.approved_by is None
    assert version.import_sources == (job_id,)
    assert version.conflicts == ()
    assert [item.version_number for item in repo.list_for_dataset(dataset.id)] == [1, 2]


def test_version_numbers_are_per_dataset() -> None:
    first = make_dataset("first")
    second = make_dataset("second")
    repo = FakeSchemaVersionRepository(
        [SchemaVersion(dataset_id=first.id, version_number=3, schema=SCHEMA)]
    )
    service = _service(repo)

    assert service.next_version_number(first.id) == 4
    assert service.next_version_number(second.id) == 1
