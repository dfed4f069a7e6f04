"""
Strategy dispatch — exactly one strategy handles any pipeline.

STRATEGIES is evaluated in order; the first whose predicate matches the
pipeline's kind flags wins. The standard strategy is the fallback.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from kanban.projection.base import KanbanItem, PipelineInfo
from kanban.projection.context import ProjectionContext
from kanban.projection.courier import project_courier
from kanban.projection.department import project_department
from kanban.projection.front_desk import project_front_desk
from kanban.projection.quality import project_quality
from kanban.projection.standard import project_standard

Strategy = Callable[[ProjectionContext, List[Dict[str, Any]]], List[KanbanItem]]


@dataclass(frozen=True)
class StrategyEntry:
    name: str
    matches: Callable[[PipelineInfo], bool]
    project: Strategy


STRATEGIES = [
    StrategyEntry('quality', lambda p: p.is_quality, project_quality),
    StrategyEntry('front_desk', lambda p: p.is_front_desk, project_front_desk),
    StrategyEntry('courier', lambda p: p.is_courier, project_courier),
    StrategyEntry('department', lambda p: p.is_department, project_department),
]

STANDARD = StrategyEntry('standard', lambda p: True, project_standard)


def select_strategy(pipeline: PipelineInfo) -> StrategyEntry:
    """First matching strategy for this pipeline, else standard."""
    for entry in STRATEGIES:
        if entry.matches(pipeline):
            return entry
    return STANDARD
