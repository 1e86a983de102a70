"""Services module for repositories, mapping and work resolution.

Listeners and the scheduler depend on the batch engine and are imported from
their own modules.
"""
from __future__ import annotations

from .execution_repository import ExecutionRepository
from .mapping_engine import CompiledMapping, FieldSpec, FieldType, MappingCache, compile_mapping, mapping_cache
from .transformers import Transformer, compile_transformer
from .work_registry import WorkRegistry, parse_work_identifier
from .work_repository import WorkRepository

__all__ = [
    "ExecutionRepository",
    "CompiledMapping",
    "FieldSpec",
    "FieldType",
    "MappingCache",
    "compile_mapping",
    "mapping_cache",
    "Transformer",
    "compile_transformer",
    "WorkRegistry",
    "parse_work_identifier",
    "WorkRepository",
]
