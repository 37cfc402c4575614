"""Orchestrator for one plan/apply cycle.

The engine composes the graph builder, planner and executor around one
explicit state store. Build and plan errors propagate before any provider call
is made; apply errors are node-scoped and reported through ``ApplyReport``.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from driftwood.domain.model import NodeStatus

from .plan import UNKNOWN
from .references import resolve_value

if TYPE_CHECKING:
    from driftwood.domain.model import Document, Reference
    from driftwood.domain.ports import StateStore

    from .build import BuildResourceGraph
    from .execute import ApplyReport, Executor
    from .graph import ResourceGraph
    from .plan import Plan, Planner

log = getLogger(__name__)


@dataclass(slots=True)
class PlanResult:
    graph: ResourceGraph
    plan: Plan


@dataclass(slots=True)
class ApplyResult:
    graph: ResourceGraph
    plan: Plan
    report: ApplyReport
    outputs: dict[str, object]


@dataclass(slots=True)
class ReconciliationEngine:
    """Run build, plan and apply stages against ``store``."""

    build: BuildResourceGraph
    planner: Planner
    executor: Executor
    store: StateStore

    def plan(
        self, document: Document, *, refresh: bool = False, destroy: bool = False
    ) -> PlanResult:
        graph = self.build(document)
        plan = self.planner(graph, self.store, refresh=refresh, destroy=destroy)
        return PlanResult(graph=graph, plan=plan)

    def apply(
        self, document: Document, *, refresh: bool = False, destroy: bool = False
    ) -> ApplyResult:
        planned = self.plan(document, refresh=refresh, destroy=destroy)
        if not planned.plan.has_changes:
            log.info("No changes: infrastructure matches the document")
        report = self.executor(planned.plan)
        counts = report.counts()
        log.info(
            "Apply finished: %s applied, %s failed, %s blocked, %s cancelled",
            counts[NodeStatus.APPLIED],
            counts[NodeStatus.FAILED],
            counts[NodeStatus.BLOCKED],
            counts[NodeStatus.CANCELLED],
        )
        outputs = {} if destroy else self.outputs(planned.graph)
        return ApplyResult(
            graph=planned.graph, plan=planned.plan, report=report, outputs=outputs
        )

    def outputs(self, graph: ResourceGraph) -> dict[str, object]:
        """Evaluate document outputs against the current state.

        Outputs whose resources have not been applied yet evaluate to ``UNKNOWN``.
        """

        class _Missing(Exception):
            pass

        def lookup(reference: Reference) -> object:
            entry = self.store.get(reference.address)
            if entry is None or reference.attribute not in entry.outputs:
                raise _Missing
            return entry.outputs[reference.attribute]

        values: dict[str, object] = {}
        for name, expression in sorted(graph.outputs.items()):
            try:
                values[name] = resolve_value(expression, lookup)
            except _Missing:
                values[name] = UNKNOWN
        return values

    def cancel(self) -> None:
        self.executor.cancel()
