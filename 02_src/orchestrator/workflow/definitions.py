"""Built-in workflow definitions."""

from ..errors import UnresolvedReference
from ..models import Step, WorkflowDefinition
from .template import compile_template, result_refs


def validate_definition(definition: WorkflowDefinition) -> None:
    """Check that every `$results.<step>` names a step declared earlier."""
    seen: set[str] = set()
    for step in definition.steps:
        if step.name in seen:
            raise ValueError(
                f"Workflow {definition.name}: duplicate step name {step.name}"
            )
        for ref in result_refs(compile_template(step.payload)):
            if ref.step not in seen:
                raise UnresolvedReference(ref.text, ref.step)
        seen.add(step.name)


CREATE_RECORD_WITH_AI = WorkflowDefinition(
    name="create-record-with-ai",
    description="Create a record using AI to generate field values",
    steps=[
        Step(
            name="get-schema",
            action="get-schema",
            payload={"table": "$params.table", "include_inherited": True},
        ),
        Step(
            name="generate-data",
            action="ai-generate",
            payload={
                "table": "$params.table",
                "prompt": "$params.prompt",
                "base_data": "$params.base_data",
            },
        ),
        Step(
            name="validate-data",
            action="validate-record",
            payload={
                "table": "$params.table",
                "data": "$results.generate-data.data",
                "schema": "$results.get-schema.schema",
            },
        ),
        Step(
            name="create-record",
            action="create-record",
            payload={
                "table": "$params.table",
                "data": "$results.generate-data.data",
                "validate_first": False,
            },
        ),
    ],
)

CREATE_RECORD = WorkflowDefinition(
    name="create-record",
    description="Create a record with validation",
    steps=[
        Step(name="get-schema", action="get-schema", payload={"table": "$params.table"}),
        Step(
            name="validate-data",
            action="validate-record",
            payload={
                "table": "$params.table",
                "data": "$params.data",
                "schema": "$results.get-schema.schema",
            },
        ),
        Step(
            name="create-record",
            action="create-record",
            payload={
                "table": "$params.table",
                "data": "$params.data",
                "validate_first": False,
            },
        ),
    ],
)

UPDATE_RECORD = WorkflowDefinition(
    name="update-record",
    description="Update a record with validation",
    steps=[
        Step(name="get-schema", action="get-schema", payload={"table": "$params.table"}),
        Step(
            name="validate-data",
            action="validate-record",
            payload={
                "table": "$params.table",
                "data": "$params.data",
                "schema": "$results.get-schema.schema",
                "is_update": True,
            },
        ),
        Step(
            name="update-record",
            action="update-record",
            payload={
                "table": "$params.table",
                "sys_id": "$params.sys_id",
                "data": "$params.data",
                "validate_first": False,
            },
        ),
    ],
)

# ai-enhance is optional: when it fails the later steps have nothing to
# reference and the run aborts at validate-data.
ENHANCED_CREATE = WorkflowDefinition(
    name="enhanced-create",
    description="Create a record with schema discovery and AI enhancement",
    steps=[
        Step(
            name="get-schema",
            action="get-schema",
            payload={"table": "$params.table", "include_inherited": True},
        ),
        Step(
            name="ai-enhance",
            action="ai-enhance",
            payload={
                "table": "$params.table",
                "data": "$params.data",
                "prompt": "$params.ai_prompt",
            },
            optional=True,
        ),
        Step(
            name="validate-data",
            action="validate-record",
            payload={
                "table": "$params.table",
                "data": "$results.ai-enhance.data",
                "schema": "$results.get-schema.schema",
            },
        ),
        Step(
            name="create-record",
            action="create-record",
            payload={
                "table": "$params.table",
                "data": "$results.ai-enhance.data",
                "validate_first": False,
            },
        ),
    ],
)

BUILTIN_WORKFLOWS: dict[str, WorkflowDefinition] = {
    definition.name: definition
    for definition in (CREATE_RECORD_WITH_AI, CREATE_RECORD, UPDATE_RECORD, ENHANCED_CREATE)
}
