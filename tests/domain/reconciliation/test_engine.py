from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from driftwood.adapters.document import load_document
from driftwood.domain.errors import BuildError, CycleError
from driftwood.domain.model import ActionKind, NodeStatus, ResourceAddress
from driftwood.domain.reconciliation import UNKNOWN
from tests.helpers.documents import bucket, bucket_and_policy, document

if TYPE_CHECKING:
    from pathlib import Path

    from driftwood.adapters.memory import InMemoryCloud, InMemoryStateStore
    from driftwood.domain.reconciliation import ReconciliationEngine


def test_apply_site_document(
    engine: ReconciliationEngine, site_document_path: Path, cloud: InMemoryCloud
) -> None:
    doc = load_document(site_document_path)

    result = engine.apply(doc)

    assert result.report.succeeded
    assert len(result.report.results) == 5
    assert result.outputs == {
        "distribution": "CDN_DISTRIBUTION-0001",
        "site_url": "https://example.test",
    }
    distribution = cloud.resources("cdn_distribution")["cdn_distribution-0001"]
    assert distribution["certificate_arn"] == "arn:memory:certificate:::certificate-0001"
    assert distribution["origin_domain_name"] == "site-prod.storage.eu-central-1.memory.test"

    assert not engine.plan(doc).plan.has_changes


def test_outputs_are_unknown_before_apply(
    engine: ReconciliationEngine, site_document_path: Path
) -> None:
    doc = load_document(site_document_path)

    outputs = engine.outputs(engine.build(doc))

    assert outputs == {"distribution": UNKNOWN, "site_url": UNKNOWN}


def test_destroy_removes_everything(
    engine: ReconciliationEngine, store: InMemoryStateStore, cloud: InMemoryCloud
) -> None:
    doc = bucket_and_policy()
    engine.apply(doc)

    result = engine.apply(doc, destroy=True)

    assert {action.kind for action in result.plan.actions} == {ActionKind.DELETE}
    assert result.report.succeeded
    assert result.outputs == {}
    assert store.entries() == ()
    assert cloud.resources() == {}


def test_build_errors_abort_before_provider_calls(
    engine: ReconciliationEngine, cloud: InMemoryCloud
) -> None:
    doc = document(
        bucket("a", depends_on=("storage_bucket.b",)),
        bucket("b", depends_on=("storage_bucket.a",)),
    )

    with pytest.raises(CycleError):
        engine.apply(doc)
    with pytest.raises(BuildError):
        engine.plan(document(bucket(enabled="maybe")))

    assert cloud.journal == []


def test_partial_failure_keeps_applied_nodes(
    engine: ReconciliationEngine, store: InMemoryStateStore, cloud: InMemoryCloud
) -> None:
    cloud.fail("access_policy", "create")

    result = engine.apply(bucket_and_policy())

    assert result.report.status_of(ResourceAddress("storage_bucket", "site")) is NodeStatus.APPLIED
    assert result.report.status_of(ResourceAddress("access_policy", "site")) is NodeStatus.FAILED
    assert [str(entry.address) for entry in store.entries()] == ["storage_bucket.site"]

    retry = engine.plan(bucket_and_policy()).plan
    assert [(str(a.address), a.kind) for a in retry.actions] == [
        ("storage_bucket.site", ActionKind.NOOP),
        ("access_policy.site", ActionKind.CREATE),
    ]
