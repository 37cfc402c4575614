"""Reconciliation core: turn a declarative document into applied infrastructure.

Layered flow for one cycle:
1) build the desired resource graph from the document
2) diff it against the state store into an ordered plan
3) execute the plan through providers, recording state per node
"""

from __future__ import annotations

from .build import BuildResourceGraph, build_graph
from .engine import ApplyResult, PlanResult, ReconciliationEngine
from .execute import ApplyReport, Executor, NodeResult
from .graph import ResourceGraph
from .plan import ABSENT, UNKNOWN, AttributeChange, ChangeAction, Plan, Planner
from .retry import RetryPolicy

__all__ = [
    "ABSENT",
    "UNKNOWN",
    "ApplyReport",
    "ApplyResult",
    "AttributeChange",
    "BuildResourceGraph",
    "ChangeAction",
    "Executor",
    "NodeResult",
    "Plan",
    "PlanResult",
    "Planner",
    "ReconciliationEngine",
    "ResourceGraph",
    "RetryPolicy",
    "build_graph",
]
