from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime
import json
import re

from agentflow.domain.models.agent_state import AgentDefinition
from agentflow.domain.models.context import AssembledContext, ScoredItem

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")
KEYWORD_PATTERN = re.compile(r"\b\w{3,}\b")

MAX_PROMPT_ITEMS = 10
ITEM_PREVIEW_LIMIT = 200
MAX_DESCRIPTION_KEYWORDS = 10
NO_CONTEXT = "No relevant context available."


def extract_keywords(request: Mapping[str, Any]) -> List[str]:
    """Keywords used to query memory for a request.

    First ten words of three or more characters from the description, then
    the request type and its tags. Order is kept, duplicates dropped.
    """

    keywords: List[str] = []

    description = request.get("description")
    if isinstance(description, str):
        keywords.extend(KEYWORD_PATTERN.findall(description.lower())[:MAX_DESCRIPTION_KEYWORDS])

    request_type = request.get("type")
    if isinstance(request_type, str) and request_type:
        keywords.append(request_type)

    tags = request.get("tags")
    if isinstance(tags, (list, tuple)):
        keywords.extend(tag for tag in tags if isinstance(tag, str) and tag)

    return list(dict.fromkeys(keywords))


def format_context(context: Optional[AssembledContext]) -> str:
    """Markdown rendering of the top context items grouped by source kind"""

    if context is None or not context.items:
        return NO_CONTEXT

    lines = [
        "# Relevant Context",
        "",
        f"Found {len(context.items)} relevant items from memory:",
        "",
    ]

    grouped: Dict[str, List[ScoredItem]] = {}
    for item in context.items[:MAX_PROMPT_ITEMS]:
        grouped.setdefault(item.source_kind.value, []).append(item)

    for kind, items in grouped.items():
        lines.append(f"## {kind.capitalize()} Memory")
        lines.append("")
        for item in items:
            lines.append(f"- **{item.key}**: {_preview(item.data)}")
        lines.append("")

    return "\n".join(lines)


def _preview(data: Any) -> str:
    if isinstance(data, str):
        if len(data) > ITEM_PREVIEW_LIMIT:
            return data[:ITEM_PREVIEW_LIMIT] + "..."
        return data
    return json.dumps(data, default=str)[:ITEM_PREVIEW_LIMIT]


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class PromptBuilder:
    """Renders an agent's prompt template against a request and its context"""

    def __init__(self, default_system_prompt: str):
        self.default_system_prompt = default_system_prompt

    def build(
        self,
        definition: AgentDefinition,
        request: Mapping[str, Any],
        context: Optional[AssembledContext],
        now: datetime
    ) -> Dict[str, str]:
        """Returns {"content": rendered prompt, "system": system prompt}.

        Placeholders use {{name}}; unknown names are left untouched.
        """

        variables: Dict[str, Any] = dict(request)
        variables.update({
            "context": format_context(context),
            "timestamp": now.isoformat(),
            "agent_type": definition.type,
            "agentType": definition.type,
        })

        def substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in variables:
                return match.group(0)
            return _render_value(variables[name])

        return {
            "content": PLACEHOLDER.sub(substitute, definition.prompt_template),
            "system": definition.system_prompt or self.default_system_prompt,
        }
