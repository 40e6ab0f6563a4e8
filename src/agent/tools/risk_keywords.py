"""
Risk Keyword Tool - exposes the keyword safety net to the agent loop.
"""
from typing import Any, Dict

from .base import Tool, ToolResult
from src.validation.keywords import KeywordSafetyNet


class CheckRiskKeywordsTool(Tool):
    """Scans text for suicidal, self-harm and homicidal danger phrases."""

    def __init__(self, safety_net: KeywordSafetyNet = None):
        self._safety_net = safety_net or KeywordSafetyNet()

    @property
    def name(self) -> str:
        return "check_risk_keywords"

    @property
    def description(self) -> str:
        return (
            "Scan note text for risk keywords (suicidal, self-harm, homicidal). "
            "Use this to cross-check risk fields before finalizing them."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The text to scan for risk keywords"},
            },
            "required": ["text"],
        }

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        text = arguments.get("text")
        if not isinstance(text, str) or not text:
            return ToolResult.fail("Missing required 'text' parameter")

        matches = self._safety_net.scan(text)
        return ToolResult.ok(data=matches.to_dict(), text_length=len(text))
