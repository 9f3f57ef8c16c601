"""AIAgent: LLM-assisted record generation and analysis."""

import json
from enum import Enum

from ..llm import ILLMProvider
from ..logging_config import get_logger
from ..message_bus import IMessageBus
from .base import BaseAgent

logger = get_logger(__name__)

GENERATE_SYSTEM_PROMPT = (
    "You fill in field values for records in a business database. "
    "Reply with a single JSON object mapping field names to values and nothing else."
)

ANALYZE_SYSTEM_PROMPT = (
    "You review code. Reply with a single JSON object with keys "
    '"summary" (string), "suggestions" (list of strings) and "issues" (list of strings).'
)


class JSONExtractionError(ValueError):
    pass


def extract_first_json_object(text: str) -> dict:
    """Parse the outermost `{...}` span of a model reply."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise JSONExtractionError("No JSON object found in response.")

    candidate = text[start : end + 1].strip()
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise JSONExtractionError(f"Invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise JSONExtractionError("Response JSON is not an object.")
    return parsed


def _describe_fields(schema: dict | None) -> str:
    if not schema:
        return "(schema unavailable)"
    lines = []
    for f in schema.get("fields", []):
        flags = []
        if f.get("mandatory"):
            flags.append("mandatory")
        if f.get("read_only"):
            flags.append("read-only")
        if f.get("max_length"):
            flags.append(f"max {f['max_length']} chars")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        lines.append(f"- {f['name']} ({f.get('type', 'string')}): {f.get('label', '')}{suffix}")
    return "\n".join(lines)


class AIAgent(BaseAgent):
    """Generates and enhances record data with an LLM."""

    agent_type = "ai"

    class Action(str, Enum):
        AI_GENERATE = "ai-generate"
        AI_ENHANCE = "ai-enhance"
        AI_ANALYZE = "ai-analyze"

    def __init__(self, bus: IMessageBus, llm_provider: ILLMProvider, **kwargs):
        super().__init__(bus, **kwargs)
        self._llm = llm_provider

    def _handlers(self):
        return {
            self.Action.AI_GENERATE: self.generate_record,
            self.Action.AI_ENHANCE: self.enhance_data,
            self.Action.AI_ANALYZE: self.analyze_code,
        }

    def subscriptions(self):
        return {
            "ai.generate": self._on_generate,
            "ai.enhance": self._on_enhance,
            "ai.analyze": self._on_analyze,
        }

    async def generate_record(self, payload: dict) -> dict:
        """Ask the model for field values; generated values override `base_data`."""
        table = payload["table"]
        prompt = payload.get("prompt") or ""
        base_data = payload.get("base_data") or {}

        schema_response = await self.delegate_task(
            "schema", {"action": "get-schema", "table": table}
        )
        schema = (schema_response or {}).get("schema")

        user_prompt = (
            f"Table: {table}\n"
            f"Fields:\n{_describe_fields(schema)}\n\n"
            f"Existing values: {json.dumps(base_data, default=str)}\n\n"
            f"Request: {prompt}"
        )
        reply = await self._llm.complete(
            messages=[{"role": "user", "content": user_prompt}],
            system=GENERATE_SYSTEM_PROMPT,
            max_tokens=2048,
        )
        generated = extract_first_json_object(reply)
        logger.info("AI generated %s fields for %s", len(generated), table)

        return {
            "success": True,
            "data": {**base_data, **generated},
            "provider": "anthropic",
        }

    async def enhance_data(self, payload: dict) -> dict:
        return await self.generate_record(
            {
                "table": payload["table"],
                "prompt": payload.get("prompt"),
                "base_data": payload.get("data") or {},
            }
        )

    async def analyze_code(self, payload: dict) -> dict:
        code = payload.get("code", "")
        prompt = payload.get("prompt") or (
            f"Analyze this {payload.get('type') or 'code'} and provide suggestions "
            f"for improvement:\n\n{code}"
        )
        reply = await self._llm.complete(
            messages=[{"role": "user", "content": prompt}],
            system=ANALYZE_SYSTEM_PROMPT,
        )
        try:
            parsed = extract_first_json_object(reply)
        except JSONExtractionError:
            parsed = {"summary": reply.strip()}

        return {
            "success": True,
            "analysis": {
                "summary": parsed.get("summary", ""),
                "suggestions": list(parsed.get("suggestions") or []),
                "issues": list(parsed.get("issues") or []),
            },
        }

    async def _on_generate(self, envelope: dict) -> dict:
        return await self.generate_record(envelope["data"])

    async def _on_enhance(self, envelope: dict) -> dict:
        return await self.enhance_data(envelope["data"])

    async def _on_analyze(self, envelope: dict) -> dict:
        return await self.analyze_code(envelope["data"])
