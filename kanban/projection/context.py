"""
Projection context — the immutable, per-call view every strategy receives.

Built once per call from the concurrently fetched pipelines/stages/members.
Nothing in here is cached between calls; the technician-name map in
particular is rebuilt every time.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from kanban.projection.base import PipelineInfo
from kanban.projection.matchers import classify_pipeline, find_stage_by_pattern, matches_stage_pattern


def _stage_sort_key(stage):
    return (stage.get('position') or 0, stage.get('name') or '')


@dataclass(frozen=True)
class ProjectionContext:
    pipeline: PipelineInfo
    stages: Tuple[Dict[str, Any], ...]                 # this pipeline's stages, ordered
    pipelines: Tuple[PipelineInfo, ...]
    stages_by_pipeline: Mapping[str, Tuple[Dict[str, Any], ...]]
    technician_names: Mapping[str, str]
    now: datetime
    acting_user_id: Optional[str] = None
    is_privileged: bool = False

    # ── Stage helpers ────────────────────────────────────────────────────

    @property
    def first_stage(self) -> Optional[Dict[str, Any]]:
        return self.stages[0] if self.stages else None

    def stage_by_id(self, stage_id: Optional[str]) -> Optional[Dict[str, Any]]:
        for stage in self.stages:
            if stage['id'] == stage_id:
                return stage
        return None

    def find_stage(self, key: str) -> Optional[Dict[str, Any]]:
        return find_stage_by_pattern(self.stages, key)

    def stage_is(self, stage_id: Optional[str], key: str) -> bool:
        stage = self.stage_by_id(stage_id)
        return stage is not None and matches_stage_pattern(stage['name'], key)

    # ── Other pipelines ──────────────────────────────────────────────────

    @property
    def department_pipelines(self) -> List[PipelineInfo]:
        return [p for p in self.pipelines if p.is_department]

    @property
    def front_desk_pipelines(self) -> List[PipelineInfo]:
        return [p for p in self.pipelines if p.is_front_desk]

    def pipeline_by_id(self, pipeline_id: Optional[str]) -> Optional[PipelineInfo]:
        for p in self.pipelines:
            if p.id == pipeline_id:
                return p
        return None

    def stages_of(self, pipeline_id: str) -> Tuple[Dict[str, Any], ...]:
        return self.stages_by_pipeline.get(pipeline_id, ())

    def any_stage_by_id(self, stage_id: Optional[str]) -> Optional[Dict[str, Any]]:
        for stages in self.stages_by_pipeline.values():
            for stage in stages:
                if stage['id'] == stage_id:
                    return stage
        return None

    def technician_name(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        return self.technician_names.get(user_id)


def build_context(pipeline_id, pipelines, stages, members, now,
                  acting_user_id=None, is_privileged=False) -> Optional[ProjectionContext]:
    """
    Assemble the context for one call. Returns None if the pipeline does not exist.
    """
    infos = tuple(classify_pipeline(p) for p in pipelines)
    pipeline = next((p for p in infos if p.id == pipeline_id), None)
    if pipeline is None:
        return None

    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for stage in stages:
        grouped.setdefault(stage['pipeline_id'], []).append(stage)
    stages_by_pipeline = {
        pid: tuple(sorted(rows, key=_stage_sort_key)) for pid, rows in grouped.items()
    }

    technician_names = {
        m['user_id']: m.get('name') or m['user_id'] for m in members
    }

    return ProjectionContext(
        pipeline=pipeline,
        stages=stages_by_pipeline.get(pipeline_id, ()),
        pipelines=infos,
        stages_by_pipeline=stages_by_pipeline,
        technician_names=technician_names,
        now=now,
        acting_user_id=acting_user_id,
        is_privileged=is_privileged,
    )
