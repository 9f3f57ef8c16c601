"""Agents reachable through the MessageBus."""

from .ai_agent import AIAgent, JSONExtractionError, extract_first_json_object
from .base import BaseAgent
from .parallel_agent import ParallelAgent
from .record_ops_agent import RecordOperationsAgent
from .schema_agent import SchemaAgent
from .validation_agent import ValidationAgent, check_field_type, validate_record

__all__ = [
    "AIAgent",
    "BaseAgent",
    "JSONExtractionError",
    "ParallelAgent",
    "RecordOperationsAgent",
    "SchemaAgent",
    "ValidationAgent",
    "check_field_type",
    "extract_first_json_object",
    "validate_record",
]
