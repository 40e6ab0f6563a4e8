"""
Summarizer Agent - short clinical summary of an extracted session.
"""
import json
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from src.agent.json_utils import parse_json_object
from src.agent.loop import AgentLoop
from src.agent.models import ClinicalExtraction
from src.agent.router import ModelRouter, ModelTask
from src.logging_config import get_logger
from src.providers.llm.base import LLMProvider, system_message, user_message
from src.providers.llm.factory import LLMFactory

logger = get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = '''You are a clinical documentation specialist creating concise, actionable summaries
of therapy session data. Be concise, clinical and accurate: only summarize what is present in the data.
Avoid unnecessary identifying details. Never speculate.'''

SUMMARY_USER_PROMPT = '''Create a concise summary of this therapy session from the extracted clinical data.

Extracted Data:
---
{extraction}
---

Return JSON in this format:
{{
  "one_liner": "2-3 sentences: concerns, key interventions, immediate outcomes",
  "key_points": "most important clinical observations",
  "interventions_used": ["..."],
  "next_session_focus": "...",
  "risk_flags": {{"risk_level": "low|moderate|high|imminent", "flags": ["..."], "requires_review": false}}
}}
Omit risk_flags when no risk indicators are present.'''


class RiskSummary(BaseModel):
    risk_level: str = "low"
    flags: List[str] = Field(default_factory=list)
    requires_review: bool = Field(default=False, validation_alias=AliasChoices("requires_review", "requiresReview"))

    model_config = {"populate_by_name": True}


class SessionSummary(BaseModel):
    """Summary stored alongside the extraction record."""
    one_liner: str = Field(default="", validation_alias=AliasChoices("one_liner", "oneLiner"))
    key_points: str = Field(default="", validation_alias=AliasChoices("key_points", "keyPoints"))
    interventions_used: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("interventions_used", "interventionsUsed")
    )
    next_session_focus: str = Field(
        default="", validation_alias=AliasChoices("next_session_focus", "nextSessionFocus")
    )
    risk_flags: Optional[RiskSummary] = Field(
        default=None, validation_alias=AliasChoices("risk_flags", "riskFlags")
    )
    model_used: str = ""
    generated_at: Optional[datetime] = None

    model_config = {"populate_by_name": True}

    @field_validator("key_points", mode="before")
    @classmethod
    def _join_key_points(cls, v):
        # Models often answer with a bullet list
        if isinstance(v, list):
            return "\n".join(f"- {item}" for item in v)
        return v


class SummarizerAgent:
    """Generates a SessionSummary from a merged ClinicalExtraction."""

    def __init__(self, llm: LLMProvider = None, router: ModelRouter = None):
        self._llm = llm
        self.router = router or ModelRouter()

    @property
    def llm(self) -> LLMProvider:
        """Lazy-load LLM provider."""
        if self._llm is None:
            self._llm = LLMFactory.create(self.router.select_model(ModelTask.SUMMARIZATION))
        return self._llm

    async def summarize_session(self, extraction: ClinicalExtraction, cancel_event=None) -> SessionSummary:
        """
        Summarize one session.

        Raises:
            ValueError: If the model's answer is not a summary object
            RuntimeError: If the agent loop ended without an answer
        """
        extraction_json = json.dumps(
            extraction.model_dump(mode="json", exclude={"metadata"}), indent=2
        )
        messages = [
            system_message(SUMMARY_SYSTEM_PROMPT),
            user_message(SUMMARY_USER_PROMPT.format(extraction=extraction_json)),
        ]

        result = await AgentLoop(self.llm).run(
            messages,
            response_format="json_object",
            temperature=0.3,
            cancel_event=cancel_event,
        )
        if not result.is_complete:
            raise RuntimeError(f"Summarization incomplete: {result.partial_reason}")

        summary = SessionSummary.model_validate(parse_json_object(result.content or ""))
        summary.model_used = result.model or self.llm.get_model_name()
        summary.generated_at = datetime.now(timezone.utc)

        logger.info("session_summary_completed", model=summary.model_used)
        return summary
