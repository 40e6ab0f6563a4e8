"""
Validation Tool - Pydantic schema plus business-rule validation.

Validates a draft clinical extraction against the ClinicalExtraction model
and the SchemaValidator rules, so the model can fix problems before it
returns its final answer.
"""
from typing import Any, Dict, List

from pydantic import ValidationError

from .base import Tool, ToolResult
from src.agent.models import ClinicalExtraction
from src.validation.schema_validator import SchemaValidator


class ValidateSchemaTool(Tool):
    """
    Validates structured clinical data.

    Performs:
    - Schema validation (types, enum values)
    - Business rule validation (required fields, ranges, consistency)
    """

    def __init__(self, validator: SchemaValidator = None):
        self._validator = validator or SchemaValidator()

    @property
    def name(self) -> str:
        return "validate_schema"

    @property
    def description(self) -> str:
        return (
            "Validate a clinical extraction against the schema. Returns validation errors "
            "if any fields are invalid or missing required values."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "extraction": {"type": "object", "description": "The clinical extraction object to validate"},
            },
            "required": ["extraction"],
        }

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        raw = arguments.get("extraction")
        if not isinstance(raw, dict):
            return ToolResult.fail("Missing required 'extraction' parameter")

        try:
            extraction = ClinicalExtraction.model_validate(raw)
        except ValidationError as e:
            # Schema errors are a valid answer for this tool, not a tool failure
            errors: List[Dict[str, str]] = []
            for error in e.errors():
                errors.append({
                    "field": ".".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                    "severity": "error",
                })
            return ToolResult.ok(data={"is_valid": False, "errors": errors})

        result = self._validator.validate(extraction)
        return ToolResult.ok(
            data={
                "is_valid": result.is_valid,
                "errors": [issue.to_dict() for issue in result.issues],
            },
            warning_count=len(result.warnings),
        )
