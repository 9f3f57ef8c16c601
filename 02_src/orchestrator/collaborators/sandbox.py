"""Sandbox collaborator interface."""

import re
from dataclasses import dataclass, field
from typing import Protocol

_MEMORY_UNITS = {"b": 1, "k": 1024, "m": 1024**2, "g": 1024**3}
_MEMORY_RE = re.compile(r"^(\d+)([bkmg])$")


def parse_memory_spec(spec: str) -> int:
    """Convert a memory limit such as "512m" or "4g" to bytes."""
    match = _MEMORY_RE.match(spec.strip().lower()) if isinstance(spec, str) else None
    if not match:
        raise ValueError(f"Invalid memory format: {spec!r}")
    amount, unit = match.groups()
    return int(amount) * _MEMORY_UNITS[unit]


@dataclass
class SandboxSpec:
    """Resource limits of one isolated environment."""

    name: str
    memory: str = "4g"
    cpus: float = 2.0
    network: str = "none"
    volumes: dict[str, str] = field(default_factory=dict)  # host -> container

    @property
    def memory_bytes(self) -> int:
        return parse_memory_spec(self.memory)


@dataclass
class SandboxHandle:
    """Reference to a created environment."""

    id: str
    name: str


class ISandbox(Protocol):
    """Isolated execution environment lifecycle."""

    async def create(self, spec: SandboxSpec) -> SandboxHandle:
        """Create (but do not start) an environment."""
        ...

    async def start(self, handle: SandboxHandle) -> None:
        """Start a created environment."""
        ...

    async def stop(self, handle: SandboxHandle) -> None:
        """Stop a running environment."""
        ...

    async def remove(self, handle: SandboxHandle) -> None:
        """Remove a stopped environment."""
        ...
