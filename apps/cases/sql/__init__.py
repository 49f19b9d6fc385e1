from __future__ import annotations

from .guard import RejectedQuery, SqlGuard, validate_sql
from .pipeline import STAGES, PipelineContext, PipelineResult, build_fix_prompt, run_pipeline
from .person import extract_person_filter

__all__ = [
    "STAGES",
    "PipelineContext",
    "PipelineResult",
    "RejectedQuery",
    "SqlGuard",
    "build_fix_prompt",
    "extract_person_filter",
    "run_pipeline",
    "validate_sql",
]
