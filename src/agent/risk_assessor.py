"""
Risk Assessor Agent - focused re-extraction of the risk section and the
conservative merge with the clinical extraction.

The re-extraction is an independent second pass over the same note, run on
every document. The model must justify each required risk key with
criteria and reasoning; missing justification is retried a bounded number
of times. A re-extraction that never parses is not replaced by a guess: the
merge records insufficient evidence and still applies the keyword guardrail.
"""
import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from src.agent.json_utils import parse_json_object
from src.agent.loop import AgentLoop
from src.agent.models import ClinicalExtraction, RiskAssessment
from src.agent.router import ModelRouter, ModelTask
from src.agent.tools import CheckRiskKeywordsTool, ToolExecutor
from src.config import settings
from src.exceptions import RiskAssessmentError
from src.logging_config import get_logger
from src.providers.llm.base import LLMProvider, system_message, user_message
from src.providers.llm.factory import LLMFactory
from src.risk.merger import ReExtractionEvidence, RiskMergeOptions, RiskMergeResult, RiskMerger

logger = get_logger(__name__)

REQUIRED_CRITERIA_KEYS: Tuple[str, ...] = (
    "suicidal_ideation",
    "si_frequency",
    "self_harm",
    "homicidal_ideation",
    "risk_level_overall",
)

MAX_CRITERIA_ITEMS = 8
MAX_CRITERIA_CHARS = 220
MAX_REASONING_CHARS = 320

RETRY_REQUIREMENT = (
    "RETRY REQUIREMENT: Include non-empty criteria_used arrays and non-empty "
    "reasoning_used strings for all required keys."
)

RISK_SYSTEM_PROMPT = '''You are a clinical safety specialist focused on risk assessment extraction.
Identify and extract risk indicators from therapy notes with the highest priority on patient safety.

CRITICAL SAFETY RULES:
1. When in doubt, report the MORE CONCERNING value
2. Do NOT downplay or minimize risk indicators
3. Subtle language like "thinking about not being here" IS suicidal ideation
4. Historical self-harm IS still a risk factor
5. Any mention of wanting to hurt others requires homicidal ideation assessment
6. Passive statements like "wish I wouldn't wake up" indicate passive suicidal ideation

Use check_risk_keywords on the note before answering.'''

RISK_USER_PROMPT = '''Extract ALL risk assessment indicators from this therapy note.

Fields (each as {{"value": ..., "confidence": 0.0-1.0, "source": {{"text": "exact quote"}}}}):
- suicidal_ideation: none | passive | active_no_plan | active_with_plan | active_with_intent
- si_frequency: rare | occasional | frequent | constant
- si_intensity: fleeting | mild | moderate | severe
- self_harm: none | historical | current | imminent
- sh_recency: when self-harm last occurred
- homicidal_ideation: none | passive | active_no_plan | active_with_plan
- hi_target: target of homicidal ideation
- safety_plan_status: not_needed | in_place | needs_update | needs_creation | declined
- protective_factors: list of strings
- risk_factors: list of strings
- means_restriction_discussed: true/false
- risk_level_overall: low | moderate | high | imminent

Also include:
- "criteria_used": {{key: [criteria that support the value]}} for {required_keys}
- "reasoning_used": {{key: "one or two sentences"}} for the same keys

Confidence must be >= 0.90 for any risk indicator that is present.
Return ONLY the JSON object.

Therapy Note:
---
{note}
---'''


@dataclass
class RiskAssessmentOutcome:
    merge: RiskMergeResult
    model_used: Optional[str]
    tool_call_count: int = 0


@dataclass
class _ReExtraction:
    risk: Optional[RiskAssessment]
    evidence: ReExtractionEvidence
    model: Optional[str] = None
    tool_call_count: int = 0


def _snake(key: str) -> str:
    """suicidalIdeation -> suicidal_ideation"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key.strip()).lower()


class RiskAssessorAgent:
    """Re-extracts risk fields and merges them with the original extraction."""

    def __init__(
        self,
        llm: LLMProvider = None,
        router: ModelRouter = None,
        merger: RiskMerger = None,
        options: RiskMergeOptions = None,
        require_criteria_used: bool = None,
        criteria_validation_attempts: int = None,
    ):
        self._llm = llm
        self.router = router or ModelRouter()
        self.options = options or RiskMergeOptions.from_settings()
        self.merger = merger or RiskMerger(self.options)
        self.require_criteria_used = (
            settings.risk_require_criteria_used if require_criteria_used is None else require_criteria_used
        )
        self.criteria_validation_attempts = max(1, (
            settings.risk_criteria_validation_attempts
            if criteria_validation_attempts is None
            else criteria_validation_attempts
        ))

    @property
    def llm(self) -> LLMProvider:
        """Lazy-load LLM provider."""
        if self._llm is None:
            self._llm = LLMFactory.create(self.router.select_model(ModelTask.RISK_ASSESSMENT))
        return self._llm

    async def assess(
        self,
        extraction: ClinicalExtraction,
        note_text: str,
        cancel_event: asyncio.Event = None,
    ) -> RiskAssessmentOutcome:
        """
        Produce the final, guardrail-checked risk assessment.

        Raises:
            RiskAssessmentError: If the provider call itself fails
        """
        original = extraction.risk_assessment

        if self.options.always_re_extract:
            re_extraction = await self._re_extract(note_text, cancel_event)
        else:
            re_extraction = _ReExtraction(
                risk=original.model_copy(deep=True),
                evidence=ReExtractionEvidence(attempts=0),
            )

        merge = self.merger.merge(original, re_extraction.risk, note_text, re_extraction.evidence)
        return RiskAssessmentOutcome(
            merge=merge,
            model_used=re_extraction.model,
            tool_call_count=re_extraction.tool_call_count,
        )

    async def _re_extract(self, note_text: str, cancel_event: Optional[asyncio.Event]) -> _ReExtraction:
        base_prompt = RISK_USER_PROMPT.format(
            note=note_text, required_keys=", ".join(REQUIRED_CRITERIA_KEYS)
        )
        failure: Optional[str] = None
        fallback: Optional[Tuple[RiskAssessment, Dict[str, Tuple[str, ...]], Dict[str, str]]] = None
        model: Optional[str] = None
        tool_calls = 0

        for attempt in range(1, self.criteria_validation_attempts + 1):
            prompt = base_prompt if attempt == 1 else f"{base_prompt}\n\n{RETRY_REQUIREMENT}"
            messages = [system_message(RISK_SYSTEM_PROMPT), user_message(prompt)]

            try:
                result = await AgentLoop(self.llm, ToolExecutor([CheckRiskKeywordsTool()])).run(
                    messages,
                    response_format="json_object",
                    temperature=0.1,
                    cancel_event=cancel_event,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise RiskAssessmentError(f"Risk re-extraction call failed: {e}") from e

            model = result.model or model
            tool_calls += result.tool_call_count

            if not result.is_complete:
                failure = result.partial_reason
                logger.warning("risk_re_extraction_partial", attempt=attempt, reason=failure)
                continue

            try:
                risk, criteria, reasoning = self._parse(result.content or "")
            except ValueError as e:
                failure = f"Failed to parse risk re-extraction: {e}"
                logger.warning("risk_re_extraction_unparseable", attempt=attempt)
                continue

            if not self.require_criteria_used or self._criteria_complete(criteria, reasoning):
                return _ReExtraction(
                    risk=risk,
                    evidence=ReExtractionEvidence(criteria=criteria, reasoning=reasoning, attempts=attempt),
                    model=model,
                    tool_call_count=tool_calls,
                )

            fallback = (risk, criteria, reasoning)
            failure = "criteria_used/reasoning_used incomplete"
            logger.warning("risk_criteria_incomplete", attempt=attempt)

        attempts = self.criteria_validation_attempts
        if fallback is not None:
            risk, criteria, reasoning = fallback
            return _ReExtraction(
                risk=risk,
                evidence=ReExtractionEvidence(
                    criteria=criteria, reasoning=reasoning, attempts=attempts, criteria_complete=False
                ),
                model=model,
                tool_call_count=tool_calls,
            )

        logger.error("risk_re_extraction_failed", attempts=attempts, reason=failure)
        return _ReExtraction(
            risk=None,
            evidence=ReExtractionEvidence(attempts=attempts, criteria_complete=False, failure=failure),
            model=model,
            tool_call_count=tool_calls,
        )

    @staticmethod
    def _parse(content: str) -> Tuple[RiskAssessment, Dict[str, Tuple[str, ...]], Dict[str, str]]:
        """
        Split a re-extraction response into risk values, criteria and reasoning.

        Raises:
            ValueError: If the response is not a valid risk object
        """
        data = {_snake(k): v for k, v in parse_json_object(content).items()}
        criteria_raw = data.pop("criteria_used", None) or {}
        reasoning_raw = data.pop("reasoning_used", None) or {}
        risk_data = data.pop("risk", None) or data

        if isinstance(risk_data, dict):
            risk_data = {_snake(k): v for k, v in risk_data.items()}

        try:
            risk = RiskAssessment.model_validate(risk_data)
        except ValidationError as e:
            raise ValueError(f"{e.error_count()} schema error(s)") from e

        return risk, _parse_criteria(criteria_raw), _parse_reasoning(reasoning_raw)

    @staticmethod
    def _criteria_complete(criteria: Dict[str, Tuple[str, ...]], reasoning: Dict[str, str]) -> bool:
        return all(criteria.get(k) and reasoning.get(k) for k in REQUIRED_CRITERIA_KEYS)


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


def _parse_criteria(raw: Any) -> Dict[str, Tuple[str, ...]]:
    if not isinstance(raw, dict):
        return {}
    parsed: Dict[str, Tuple[str, ...]] = {}
    for key, value in raw.items():
        items: List[str] = []
        if isinstance(value, str):
            items = [value]
        elif isinstance(value, list):
            items = [str(v) for v in value if v is not None]
        items = [_truncate(i, MAX_CRITERIA_CHARS) for i in items if str(i).strip()]
        if items:
            parsed[_snake(key)] = tuple(items[:MAX_CRITERIA_ITEMS])
    return parsed


def _parse_reasoning(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {
        _snake(key): _truncate(str(value), MAX_REASONING_CHARS)
        for key, value in raw.items()
        if value is not None and str(value).strip()
    }
