"""`$params.*` / `$results.<step>.*` references in step payloads.

Payload templates are compiled into a small expression tree (`Literal`,
`ParamRef`, `ResultRef`, plus dicts and lists of those) and rendered
against the run's params and the results gathered so far.
"""

from dataclasses import dataclass
from typing import Any, Iterator

from ..errors import UnresolvedReference

PARAMS = "$params"
RESULTS = "$results"


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class ParamRef:
    path: tuple[str, ...]

    @property
    def text(self) -> str:
        return ".".join((PARAMS, *self.path))


@dataclass(frozen=True)
class ResultRef:
    step: str
    path: tuple[str, ...]

    @property
    def text(self) -> str:
        return ".".join((RESULTS, self.step, *self.path))


def parse_reference(text: str) -> ParamRef | ResultRef | None:
    """Reference named by `text`, or None for an ordinary string."""
    if text == PARAMS:
        return ParamRef(())
    if text.startswith(PARAMS + "."):
        return ParamRef(tuple(text[len(PARAMS) + 1 :].split(".")))
    if text.startswith(RESULTS + "."):
        step, _, path = text[len(RESULTS) + 1 :].partition(".")
        if not step:
            raise ValueError(f"Malformed reference: {text}")
        return ResultRef(step, tuple(path.split(".")) if path else ())
    return None


def compile_template(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: compile_template(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [compile_template(item) for item in value]
    if isinstance(value, str):
        ref = parse_reference(value)
        if ref is not None:
            return ref
    return Literal(value)


def result_refs(expr: Any) -> Iterator[ResultRef]:
    """Every ResultRef in a compiled template, depth first."""
    if isinstance(expr, ResultRef):
        yield expr
    elif isinstance(expr, dict):
        for item in expr.values():
            yield from result_refs(item)
    elif isinstance(expr, list):
        for item in expr:
            yield from result_refs(item)


def render(expr: Any, params: dict, results: dict) -> Any:
    """Evaluate a compiled template.

    Missing params or missing fields of a result render as None. A
    reference to a step with no entry in `results` raises
    UnresolvedReference.
    """
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, ParamRef):
        return _walk(params, expr.path)
    if isinstance(expr, ResultRef):
        if expr.step not in results:
            raise UnresolvedReference(expr.text, expr.step)
        return _walk(results[expr.step], expr.path)
    if isinstance(expr, dict):
        return {key: render(item, params, results) for key, item in expr.items()}
    if isinstance(expr, list):
        return [render(item, params, results) for item in expr]
    return expr


def render_payload(payload: dict, params: dict, results: dict) -> dict:
    return render(compile_template(payload), params, results)


def _walk(value: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if isinstance(value, dict):
            value = value.get(key)
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return None
        if value is None:
            return None
    return value
