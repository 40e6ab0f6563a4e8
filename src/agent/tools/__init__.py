"""
Agent tools for therapy-note extraction.

Each tool follows a standardized interface:
- Defined by abstract Tool base class
- Returns ToolResult with success/failure status
- Dispatched by name through ToolExecutor
"""
from .base import Tool, ToolResult
from .executor import ToolExecutor
from .risk_keywords import CheckRiskKeywordsTool
from .scoring import ScoreConfidenceTool
from .validator import ValidateSchemaTool
from .icd_lookup import LookupDiagnosisCodeTool

__all__ = [
    "Tool",
    "ToolResult",
    "ToolExecutor",
    "CheckRiskKeywordsTool",
    "ScoreConfidenceTool",
    "ValidateSchemaTool",
    "LookupDiagnosisCodeTool",
]
