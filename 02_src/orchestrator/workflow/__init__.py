"""Declarative multi-step workflows."""

from .definitions import BUILTIN_WORKFLOWS, validate_definition
from .executor import StepRunner, WorkflowExecutor
from .template import (
    Literal,
    ParamRef,
    ResultRef,
    compile_template,
    parse_reference,
    render,
    render_payload,
    result_refs,
)

__all__ = [
    "BUILTIN_WORKFLOWS",
    "Literal",
    "ParamRef",
    "ResultRef",
    "StepRunner",
    "WorkflowExecutor",
    "compile_template",
    "parse_reference",
    "render",
    "render_payload",
    "result_refs",
    "validate_definition",
]
