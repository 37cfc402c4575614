from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from driftwood.adapters.memory import InMemoryStateStore
from driftwood.domain.errors import (
    PreventDestroyError,
    ProviderNotFoundError,
    SchemaValidationError,
)
from driftwood.domain.model import ActionKind, ResourceAddress, StateEntry
from driftwood.domain.reconciliation import ABSENT, UNKNOWN, build_graph
from tests.helpers.documents import bucket, bucket_and_policy, declare, document, policy

if TYPE_CHECKING:
    from driftwood.adapters.memory import InMemoryCloud
    from driftwood.domain.model import ResourceDeclaration
    from driftwood.domain.reconciliation import Executor, Planner

BUCKET = ResourceAddress("storage_bucket", "site")
POLICY = ResourceAddress("access_policy", "site")
CERTIFICATE = ResourceAddress("certificate", "site")
DISTRIBUTION = ResourceAddress("cdn_distribution", "site")


def _certificate(**overrides: object) -> ResourceDeclaration:
    attributes: dict[str, object] = {"domain_name": "example.test", "validation_method": "dns"}
    attributes.update(overrides)
    return declare("certificate", "site", **attributes)


def _distribution(**overrides: object) -> ResourceDeclaration:
    attributes: dict[str, object] = {
        "origin_domain_name": "${storage_bucket.site.regional_domain_name}",
        "price_class": "standard",
    }
    attributes.update(overrides)
    return declare("cdn_distribution", "site", **attributes)


def test_empty_state_plans_creates_in_dependency_order(
    planner: Planner, store: InMemoryStateStore
) -> None:
    plan = planner(build_graph(bucket_and_policy()), store)

    assert [(str(a.address), a.kind) for a in plan.actions] == [
        ("storage_bucket.site", ActionKind.CREATE),
        ("access_policy.site", ActionKind.CREATE),
    ]
    assert plan.prerequisites(POLICY) == frozenset({BUCKET})
    bucket_change = plan.action_for(POLICY).change_for("bucket")
    assert bucket_change is not None
    assert bucket_change.before is ABSENT
    assert bucket_change.after is UNKNOWN


def test_planning_after_apply_is_idempotent(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    graph = build_graph(bucket_and_policy())
    executor(planner(graph, store))

    plan = planner(graph, store)

    assert not plan.has_changes
    assert {action.kind for action in plan.actions} == {ActionKind.NOOP}
    assert planner(graph, store).summary() == plan.summary()


def test_non_forcing_change_is_an_update(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    executor(planner(build_graph(document(bucket(), _distribution())), store))

    plan = planner(build_graph(document(bucket(), _distribution(price_class="global"))), store)

    action = plan.action_for(DISTRIBUTION)
    assert action.kind is ActionKind.UPDATE
    assert [(c.attribute, c.before, c.after) for c in action.changes] == [
        ("price_class", "standard", "global")
    ]
    assert plan.action_for(BUCKET).kind is ActionKind.NOOP


def test_replace_forcing_change_is_a_replace(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    executor(planner(build_graph(bucket_and_policy()), store))

    plan = planner(build_graph(document(bucket(region="us-east-1"), policy())), store)

    bucket_action = plan.action_for(BUCKET)
    assert bucket_action.kind is ActionKind.REPLACE
    region = bucket_action.change_for("region")
    assert region is not None
    assert region.forces_replacement
    # the new bucket's ARN is only known after apply, so the policy is replaced too
    policy_action = plan.action_for(POLICY)
    assert policy_action.kind is ActionKind.REPLACE
    policy_bucket = policy_action.change_for("bucket")
    assert policy_bucket is not None
    assert policy_bucket.after is UNKNOWN


def test_certificate_domain_change_forces_replacement(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    executor(planner(build_graph(document(_certificate())), store))

    plan = planner(build_graph(document(_certificate(domain_name="example.org"))), store)

    assert plan.action_for(CERTIFICATE).kind is ActionKind.REPLACE


def test_update_of_dependency_propagates_new_value(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    record = declare(
        "dns_record",
        "www",
        zone="example.test",
        record_name="www",
        record_type="CNAME",
        values=["${cdn_distribution.site.price_class}"],
    )
    executor(planner(build_graph(document(bucket(), _distribution(), record)), store))

    plan = planner(
        build_graph(document(bucket(), _distribution(price_class="global"), record)), store
    )

    action = plan.action_for(ResourceAddress("dns_record", "www"))
    assert action.kind is ActionKind.UPDATE
    values = action.change_for("values")
    assert values is not None
    assert values.after == ["global"]


def test_orphans_are_deleted_dependents_first(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    executor(planner(build_graph(bucket_and_policy()), store))

    plan = planner(build_graph(document()), store)

    assert [(str(a.address), a.kind) for a in plan.actions] == [
        ("access_policy.site", ActionKind.DELETE),
        ("storage_bucket.site", ActionKind.DELETE),
    ]
    assert plan.prerequisites(BUCKET) == frozenset({POLICY})


def test_dependent_update_runs_before_delete_of_old_dependency(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    initial = document(bucket(), bucket("old"), policy(bucket_name="old"))
    executor(planner(build_graph(initial), store))

    plan = planner(build_graph(document(bucket(), policy(bucket_name="site"))), store)

    old = ResourceAddress("storage_bucket", "old")
    assert plan.action_for(old).kind is ActionKind.DELETE
    assert POLICY in plan.prerequisites(old)


def test_destroy_plans_delete_for_every_entry(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    graph = build_graph(bucket_and_policy())
    executor(planner(graph, store))

    plan = planner(graph, store, destroy=True)

    assert [a.kind for a in plan.actions] == [ActionKind.DELETE, ActionKind.DELETE]
    assert plan.actions[0].address == POLICY


def test_prevent_destroy_blocks_delete_and_replace(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    protected = bucket(prevent_destroy=True)
    graph = build_graph(document(protected))
    executor(planner(graph, store))

    with pytest.raises(PreventDestroyError):
        planner(graph, store, destroy=True)
    with pytest.raises(PreventDestroyError):
        planner(build_graph(document(bucket(prevent_destroy=True, region="us-east-1"))), store)


def test_ignore_changes_suppresses_diff(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    executor(planner(build_graph(document(bucket(), _distribution())), store))

    ignored = declare(
        "cdn_distribution",
        "site",
        origin_domain_name="${storage_bucket.site.regional_domain_name}",
        price_class="global",
        ignore_changes=("price_class",),
    )
    plan = planner(build_graph(document(bucket(), ignored)), store)

    assert plan.action_for(DISTRIBUTION).kind is ActionKind.NOOP


def test_missing_required_attribute_fails_validation(
    planner: Planner, store: InMemoryStateStore
) -> None:
    doc = document(declare("certificate", "site", domain_name="example.test"))

    with pytest.raises(SchemaValidationError, match="validation_method"):
        planner(build_graph(doc), store)


def test_setting_computed_attribute_fails_validation(
    planner: Planner, store: InMemoryStateStore
) -> None:
    with pytest.raises(SchemaValidationError, match="arn"):
        planner(build_graph(document(bucket(arn="arn:custom"))), store)


def test_unknown_resource_type_is_rejected(planner: Planner, store: InMemoryStateStore) -> None:
    with pytest.raises(ProviderNotFoundError):
        planner(build_graph(document(declare("queue", "jobs", size=1))), store)


def test_refresh_detects_drift(
    planner: Planner,
    executor: Executor,
    store: InMemoryStateStore,
    cloud: InMemoryCloud,
) -> None:
    graph = build_graph(document(bucket(), _distribution()))
    executor(planner(graph, store))
    recorded = store.get(DISTRIBUTION)
    assert recorded is not None
    cloud.drift(recorded.external_id, price_class="regional")

    assert not planner(graph, store).has_changes
    plan = planner(graph, store, refresh=True)

    action = plan.action_for(DISTRIBUTION)
    assert action.kind is ActionKind.UPDATE
    assert [(c.before, c.after) for c in action.changes] == [("regional", "standard")]
    # refresh never writes the store
    assert store.get(DISTRIBUTION) == recorded


def test_refresh_recreates_vanished_resource(
    planner: Planner,
    executor: Executor,
    store: InMemoryStateStore,
    cloud: InMemoryCloud,
) -> None:
    graph = build_graph(bucket_and_policy())
    executor(planner(graph, store))
    stale = store.get(BUCKET)
    assert stale is not None
    cloud.remove(stale.external_id)

    plan = planner(graph, store, refresh=True)

    action = plan.action_for(BUCKET)
    assert action.kind is ActionKind.CREATE
    assert action.prior == stale
    assert plan.action_for(POLICY).kind is ActionKind.REPLACE


def test_refresh_deletes_vanished_orphan(
    planner: Planner,
    executor: Executor,
    store: InMemoryStateStore,
    cloud: InMemoryCloud,
) -> None:
    executor(planner(build_graph(document(bucket())), store))
    stale = store.get(BUCKET)
    assert stale is not None
    cloud.remove(stale.external_id)

    plan = planner(build_graph(document()), store, refresh=True)

    assert plan.action_for(BUCKET).kind is ActionKind.DELETE


def test_seeded_state_without_changes_is_noop(planner: Planner, cloud: InMemoryCloud) -> None:
    attributes = {"bucket_name": "site-bucket", "region": "eu-central-1"}
    external_id = cloud.create("storage_bucket", attributes)
    seeded = InMemoryStateStore(
        [StateEntry(address=BUCKET, external_id=external_id, attributes=attributes)]
    )

    plan = planner(build_graph(document(bucket())), seeded)

    assert plan.action_for(BUCKET).kind is ActionKind.NOOP


def test_dependency_only_change_is_recorded_for_teardown(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    other = ResourceAddress("storage_bucket", "other")
    executor(planner(build_graph(document(bucket(), bucket("other"))), store))
    linked = build_graph(
        document(bucket(depends_on=("storage_bucket.other",)), bucket("other"))
    )

    plan = planner(linked, store)
    action = plan.action_for(BUCKET)
    assert action.kind is ActionKind.NOOP
    assert action.rewrites_dependencies
    assert not plan.has_changes

    report = executor(plan)

    assert report.succeeded
    entry = store.get(BUCKET)
    assert entry is not None
    assert entry.dependencies == frozenset({other})
    assert not planner(linked, store).action_for(BUCKET).rewrites_dependencies
    teardown = planner(build_graph(document()), store)
    assert BUCKET in teardown.prerequisites(other)


def test_destroy_orders_deletes_by_document_dependencies(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> None:
    other = ResourceAddress("storage_bucket", "other")
    executor(planner(build_graph(document(bucket(), bucket("other"))), store))
    linked = build_graph(
        document(bucket(depends_on=("storage_bucket.other",)), bucket("other"))
    )

    teardown = planner(linked, store, destroy=True)

    assert teardown.action_for(other).kind is ActionKind.DELETE
    assert BUCKET in teardown.prerequisites(other)
