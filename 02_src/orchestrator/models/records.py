"""Record schema and validation models."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class FieldSchema:
    """One field of a table schema."""

    name: str
    type: str
    label: str = ""
    mandatory: bool = False
    read_only: bool = False
    reference: str | None = None
    max_length: int | None = None
    is_inherited: bool = False
    inherited_from: str | None = None

    @property
    def display(self) -> str:
        return f"'{self.label or self.name}' ({self.name})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label or self.name,
            "type": self.type,
            "mandatory": self.mandatory,
            "read_only": self.read_only,
            "reference": self.reference,
            "max_length": self.max_length,
            "is_inherited": self.is_inherited,
            "inherited_from": self.inherited_from,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldSchema":
        return cls(
            name=data["name"],
            type=data.get("type", "string"),
            label=data.get("label") or data["name"],
            mandatory=bool(data.get("mandatory", False)),
            read_only=bool(data.get("read_only", False)),
            reference=data.get("reference"),
            max_length=data.get("max_length"),
            is_inherited=bool(data.get("is_inherited", False)),
            inherited_from=data.get("inherited_from"),
        )


@dataclass
class TableSchema:
    """Field list of a table."""

    table: str
    fields: list[FieldSchema]
    fetched_at: float | None = None

    def field_names(self) -> set[str]:
        return {f.name for f in self.fields}

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "fields": [f.to_dict() for f in self.fields],
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableSchema":
        return cls(
            table=data["table"],
            fields=[FieldSchema.from_dict(f) for f in data.get("fields", [])],
            fetched_at=data.get("fetched_at"),
        )


@dataclass
class ValidationResult:
    """Outcome of validating record data. Warnings never make it invalid."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class ValidationFailed:
    """Returned (not raised) by record operations rejected by validation."""

    table: str
    errors: list[str]
    warnings: list[str] = field(default_factory=list)
    rolled_back: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": "validation_failed",
            "table": self.table,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "rolled_back": self.rolled_back,
        }
