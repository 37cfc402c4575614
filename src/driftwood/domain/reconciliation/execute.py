"""Executor: apply a plan node by node.

Each action moves through ``PENDING -> IN_PROGRESS -> APPLIED | FAILED``.
An action is dispatched only once all of its prerequisites are ``APPLIED``;
when an action fails, everything that depends on it becomes ``BLOCKED``.
Actions that already succeeded are left in place: there is no global rollback.

Dispatch runs on an asyncio loop. Provider calls and the state write that
follows them run in a worker thread per action, bounded by ``concurrency``.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

from driftwood.domain.errors import ProviderError, StateConflictError
from driftwood.domain.model import ActionKind, NodeStatus, StateEntry

from .references import resolve_value
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from collections.abc import Mapping

    from driftwood.domain.model import Reference, ResourceAddress
    from driftwood.domain.ports import ProviderRegistry, ResourceProvider, StateStore

    from .plan import ChangeAction, Plan

log = getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 4


@dataclass(slots=True, kw_only=True)
class NodeResult:
    address: ResourceAddress
    kind: ActionKind
    status: NodeStatus = NodeStatus.PENDING
    attempts: int = 0
    error: str | None = None
    blocked_by: ResourceAddress | None = None


@dataclass(slots=True)
class ApplyReport:
    """Terminal state of every action in a plan."""

    results: dict[ResourceAddress, NodeResult] = field(default_factory=dict)
    cancelled: bool = False

    def status_of(self, address: ResourceAddress) -> NodeStatus:
        return self.results[address].status

    @property
    def statuses(self) -> dict[ResourceAddress, NodeStatus]:
        return {address: result.status for address, result in self.results.items()}

    @property
    def succeeded(self) -> bool:
        return all(result.status is NodeStatus.APPLIED for result in self.results.values())

    @property
    def failures(self) -> tuple[NodeResult, ...]:
        return tuple(
            result for result in self.results.values() if result.status is NodeStatus.FAILED
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def counts(self) -> dict[NodeStatus, int]:
        counts = dict.fromkeys(NodeStatus, 0)
        for result in self.results.values():
            counts[result.status] += 1
        return counts


@dataclass(slots=True)
class Executor:
    providers: ProviderRegistry
    store: StateStore
    concurrency: int = DEFAULT_CONCURRENCY
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], None] = time.sleep
    _cancelled: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    def cancel(self) -> None:
        """Stop dispatching new actions; in-flight provider calls are allowed to finish."""

        if not self._cancelled.is_set():
            log.warning("Cancellation requested, waiting for in-flight operations")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def __call__(self, plan: Plan) -> ApplyReport:
        return asyncio.run(self.apply_async(plan))

    async def apply_async(self, plan: Plan) -> ApplyReport:
        self._cancelled.clear()
        report = ApplyReport(
            results={
                action.address: NodeResult(address=action.address, kind=action.kind)
                for action in plan.actions
            }
        )
        in_flight: dict[asyncio.Task[None], ResourceAddress] = {}
        conflict: StateConflictError | None = None

        while True:
            if conflict is None and not self.cancelled:
                self._dispatch_ready(plan, report, in_flight)
            if not in_flight:
                break
            done, _pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                address = in_flight.pop(task)
                error = task.exception()
                if error is None:
                    report.results[address].status = NodeStatus.APPLIED
                    log.info("%s: %s applied", address, report.results[address].kind)
                    continue
                self._record_failure(plan, report, address, error)
                if isinstance(error, StateConflictError) and conflict is None:
                    conflict = error

        for result in report.results.values():
            if result.status is NodeStatus.PENDING:
                result.status = NodeStatus.CANCELLED
        report.cancelled = self.cancelled

        if conflict is not None:
            raise StateConflictError(str(conflict), report=report) from conflict
        return report

    def _dispatch_ready(
        self,
        plan: Plan,
        report: ApplyReport,
        in_flight: dict[asyncio.Task[None], ResourceAddress],
    ) -> None:
        progressed = True
        while progressed:
            progressed = False
            for action in plan.actions:
                if len(in_flight) >= self.concurrency:
                    return
                result = report.results[action.address]
                if result.status is not NodeStatus.PENDING:
                    continue
                if any(
                    report.results[prerequisite].status is not NodeStatus.APPLIED
                    for prerequisite in plan.prerequisites(action.address)
                ):
                    continue
                result.status = NodeStatus.IN_PROGRESS
                if action.kind is ActionKind.NOOP and not action.rewrites_dependencies:
                    result.status = NodeStatus.APPLIED
                    progressed = True
                    continue
                log.info("%s: %s started", action.address, action.kind)
                task = asyncio.create_task(asyncio.to_thread(self.apply_action, action, result))
                in_flight[task] = action.address

    def _record_failure(
        self,
        plan: Plan,
        report: ApplyReport,
        address: ResourceAddress,
        error: BaseException,
    ) -> None:
        result = report.results[address]
        result.status = NodeStatus.FAILED
        result.error = str(error)
        if isinstance(error, ProviderError | StateConflictError):
            log.error("%s: %s failed: %s", address, result.kind, error)
        else:
            log.error("%s: %s failed unexpectedly", address, result.kind, exc_info=error)

        for dependent in sorted(plan.blocked_by(address)):
            blocked = report.results[dependent]
            if blocked.status is NodeStatus.PENDING:
                blocked.status = NodeStatus.BLOCKED
                blocked.blocked_by = address
                blocked.error = f"blocked by failure of {address}"

    def apply_action(self, action: ChangeAction, result: NodeResult) -> None:
        """Run the provider calls and state writes for one action (worker thread)."""

        provider = self.providers.get(action.address.type)
        match action.kind:
            case ActionKind.CREATE:
                expected = action.prior.version if action.prior else None
                self._create(provider, action, result, expected_version=expected)
            case ActionKind.UPDATE:
                self._update(provider, action, result)
            case ActionKind.REPLACE:
                self._replace(provider, action, result)
            case ActionKind.DELETE:
                self._delete(provider, action, result)
            case ActionKind.NOOP:
                self._record_dependencies(action)

    def _create(
        self,
        provider: ResourceProvider,
        action: ChangeAction,
        result: NodeResult,
        *,
        expected_version: int | None,
    ) -> StateEntry:
        attributes = self._resolve_attributes(action)
        created = self._call(
            lambda: provider.create(attributes), result, description=f"create {action.address}"
        )
        return self._record(
            action,
            external_id=created.external_id,
            attributes=attributes,
            outputs=created.outputs,
            expected_version=expected_version,
        )

    def _update(self, provider: ResourceProvider, action: ChangeAction, result: NodeResult) -> None:
        prior = _require_prior(action)
        attributes = self._resolve_attributes(action)
        outputs = self._call(
            lambda: provider.update(prior.external_id, attributes),
            result,
            description=f"update {action.address}",
        )
        self._record(
            action,
            external_id=prior.external_id,
            attributes=attributes,
            outputs=outputs,
            expected_version=prior.version,
        )

    def _replace(
        self, provider: ResourceProvider, action: ChangeAction, result: NodeResult
    ) -> None:
        prior = _require_prior(action)
        if action.create_before_destroy:
            stored = self._create(provider, action, result, expected_version=prior.version)
            log.info(
                "%s: replacement %s recorded, deleting %s",
                action.address,
                stored.external_id,
                prior.external_id,
            )
            self._call(
                lambda: provider.delete(prior.external_id),
                result,
                description=f"delete replaced {action.address} ({prior.external_id})",
            )
            return

        self._call(
            lambda: provider.delete(prior.external_id),
            result,
            description=f"delete {action.address} for replacement",
        )
        self.store.delete(action.address, expected_version=prior.version)
        self._create(provider, action, result, expected_version=None)

    def _delete(self, provider: ResourceProvider, action: ChangeAction, result: NodeResult) -> None:
        prior = _require_prior(action)
        self._call(
            lambda: provider.delete(prior.external_id),
            result,
            description=f"delete {action.address}",
        )
        self.store.delete(action.address, expected_version=prior.version)

    def _record_dependencies(self, action: ChangeAction) -> None:
        prior = _require_prior(action)
        log.info(
            "%s: recording dependencies %s",
            action.address,
            ", ".join(sorted(map(str, action.dependencies))) or "(none)",
        )
        self.store.put(
            replace(prior, dependencies=action.dependencies), expected_version=prior.version
        )

    def _call(self, func: Callable[[], T], result: NodeResult, *, description: str) -> T:
        def count_attempt() -> None:
            result.attempts += 1

        return call_with_retry(
            func,
            policy=self.retry,
            description=description,
            sleep=self.sleep,
            on_attempt=count_attempt,
        )

    def _record(
        self,
        action: ChangeAction,
        *,
        external_id: str,
        attributes: Mapping[str, object],
        outputs: Mapping[str, object],
        expected_version: int | None,
    ) -> StateEntry:
        entry = StateEntry(
            address=action.address,
            external_id=external_id,
            attributes=dict(attributes),
            outputs={**attributes, **outputs},
            dependencies=action.dependencies,
        )
        return self.store.put(entry, expected_version=expected_version)

    def _resolve_attributes(self, action: ChangeAction) -> dict[str, object]:
        node = action.node
        if node is None:
            raise ValueError(f"{action.address}: {action.kind} requires a desired node")

        def lookup(reference: Reference) -> object:
            entry = self.store.get(reference.address)
            if entry is None or reference.attribute not in entry.outputs:
                raise ProviderError(
                    f"{reference} was not reported by the provider for {reference.address}"
                )
            return entry.outputs[reference.attribute]

        attributes = {key: resolve_value(value, lookup) for key, value in node.attributes.items()}
        if action.prior is not None:
            for key in node.lifecycle.ignore_changes:
                if key in action.prior.attributes:
                    attributes[key] = action.prior.attributes[key]
        return attributes


def _require_prior(action: ChangeAction) -> StateEntry:
    if action.prior is None:
        raise ValueError(f"{action.address}: {action.kind} requires a prior state entry")
    return action.prior
