"""ValidationAgent: checks record data against a table schema."""

from enum import Enum
from typing import Any

from ..logging_config import get_logger
from ..models import FieldSchema, TableSchema, ValidationResult
from .base import BaseAgent

logger = get_logger(__name__)

REFERENCE_ID_LENGTH = 32


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    if isinstance(value, str):
        try:
            int(value.strip())
        except ValueError:
            return False
        return True
    return False


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def check_field_type(field: FieldSchema, value: Any) -> list[str]:
    """Type conformance errors for one value (empty list if it conforms)."""
    errors = []
    if field.type in ("string", "email", "url"):
        if not isinstance(value, str):
            errors.append(f"Expected string, got {type(value).__name__}")
        elif field.max_length and len(value) > field.max_length:
            errors.append(f"Value exceeds maximum length of {field.max_length}")
    elif field.type == "integer":
        if not _is_integer(value):
            errors.append("Expected integer value")
    elif field.type in ("decimal", "float", "currency"):
        if not _is_number(value):
            errors.append("Expected numeric value")
    elif field.type == "boolean":
        if not isinstance(value, bool) and value not in ("true", "false"):
            errors.append("Expected boolean value")
    elif field.type == "reference":
        if not isinstance(value, str) or len(value) != REFERENCE_ID_LENGTH:
            errors.append(
                f"Expected {REFERENCE_ID_LENGTH}-character sys_id for reference field"
            )
    return errors


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def validate_record(
    schema: TableSchema, data: dict, is_update: bool = False
) -> ValidationResult:
    """Validate `data` against `schema`.

    Mandatory fields are only enforced on create, or on update when the
    field is present in `data`. Read-only fields written on update and
    fields missing from the schema produce warnings.
    """
    result = ValidationResult()

    for field in schema.fields:
        supplied = field.name in data
        value = data.get(field.name)

        if field.mandatory and (not is_update or supplied) and _is_blank(value):
            result.errors.append(f"Field {field.display} is mandatory")

        if value is None:
            continue

        if not _is_blank(value):
            for error in check_field_type(field, value):
                result.errors.append(f"Field {field.display}: {error}")

        if is_update and field.read_only:
            result.warnings.append(f"Field {field.display} is read-only")

    known = schema.field_names()
    for name in data:
        if name not in known:
            result.warnings.append(f"Unknown field: {name}")

    return result


class ValidationAgent(BaseAgent):
    """Validates record data; failures are returned, never raised."""

    agent_type = "validation"

    class Action(str, Enum):
        VALIDATE_RECORD = "validate-record"
        VALIDATE_FIELD = "validate-field"

    def _handlers(self):
        return {
            self.Action.VALIDATE_RECORD: self.validate_record,
            self.Action.VALIDATE_FIELD: self.validate_field,
        }

    def subscriptions(self):
        return {"validate.record": self._on_validate_record}

    async def validate_record(self, payload: dict) -> dict:
        table = payload["table"]
        data = payload.get("data") or {}
        schema = payload.get("schema")

        if schema is None:
            response = await self.delegate_task(
                "schema", {"action": "get-schema", "table": table}
            )
            schema = (response or {}).get("schema")

        if schema is None:
            logger.warning("No schema available for %s, skipping validation", table)
            return ValidationResult(
                warnings=["No schema available for validation"]
            ).to_dict()

        if isinstance(schema, dict):
            schema = TableSchema.from_dict(schema)

        result = validate_record(schema, data, is_update=bool(payload.get("is_update")))
        logger.info(
            "Validation of %s: %s (%s errors, %s warnings)",
            table,
            "VALID" if result.valid else "INVALID",
            len(result.errors),
            len(result.warnings),
        )
        return result.to_dict()

    async def validate_field(self, payload: dict) -> dict:
        field = payload["field"]
        if isinstance(field, dict):
            field = FieldSchema.from_dict(field)
        value = payload.get("value")

        errors = [] if _is_blank(value) else check_field_type(field, value)
        if payload.get("mandatory", field.mandatory) and _is_blank(value):
            errors.append("Field is mandatory")
        return {"valid": not errors, "errors": errors}

    async def _on_validate_record(self, envelope: dict) -> dict:
        return await self.validate_record(envelope["data"])
