"""
Diagnosis Code Lookup Tool - ICD-10-CM codes for mental health diagnoses.

Checks a curated table of common F-codes first, then falls back to the NIH
ClinicalTables API for codes or descriptions the table does not know.

API Documentation: https://clinicaltables.nlm.nih.gov/apidoc/icd10cm/v3/doc.html
"""
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from .base import Tool, ToolResult

# NIH ClinicalTables API for ICD-10-CM
ICD10_API_BASE = "https://clinicaltables.nlm.nih.gov/api/icd10cm/v3/search"

MENTAL_HEALTH_CODE_PATTERN = re.compile(r"^F\d{2}(\.\d{1,2})?$")

COMMON_CODES: Dict[str, str] = {
    "F32.0": "Major depressive disorder, single episode, mild",
    "F32.1": "Major depressive disorder, single episode, moderate",
    "F32.2": "Major depressive disorder, single episode, severe without psychotic features",
    "F33.0": "Major depressive disorder, recurrent, mild",
    "F33.1": "Major depressive disorder, recurrent, moderate",
    "F41.0": "Panic disorder",
    "F41.1": "Generalized anxiety disorder",
    "F43.10": "Post-traumatic stress disorder, unspecified",
    "F43.11": "Post-traumatic stress disorder, acute",
    "F43.12": "Post-traumatic stress disorder, chronic",
    "F90.0": "Attention-deficit hyperactivity disorder, predominantly inattentive type",
    "F90.1": "Attention-deficit hyperactivity disorder, predominantly hyperactive type",
    "F90.2": "Attention-deficit hyperactivity disorder, combined type",
}


class LookupDiagnosisCodeTool(Tool):
    """
    Looks up ICD-10-CM diagnosis codes.

    Features:
    - Local table for the most common mental health codes (no network)
    - F-code format validation
    - NIH ClinicalTables fallback by code or by description
    - Graceful degradation when the API is unreachable
    """

    def __init__(self, timeout: float = 10.0, max_results: int = 5, client: httpx.AsyncClient = None):
        """
        Initialize the lookup tool.

        Args:
            timeout: HTTP request timeout in seconds
            max_results: Maximum results to request from API
            client: Optional preconfigured HTTP client
        """
        self.timeout = timeout
        self.max_results = max_results
        self._client: Optional[httpx.AsyncClient] = client

    @property
    def name(self) -> str:
        return "lookup_diagnosis_code"

    @property
    def description(self) -> str:
        return (
            "Look up an ICD-10 diagnosis code. Pass 'code' (e.g. F32.1) to validate a code "
            "or 'description' (e.g. 'generalized anxiety') to find one."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "code": {"type": "string", "description": "The diagnosis code to look up (e.g., F32.1, F41.1)"},
                "description": {"type": "string", "description": "Diagnosis name to search for"},
            },
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        code = arguments.get("code")
        description = arguments.get("description")

        if isinstance(code, str) and code.strip():
            return await self._lookup_code(code.strip().upper())
        if isinstance(description, str) and description.strip():
            return await self._lookup_description(description.strip())
        return ToolResult.fail("Missing required 'code' parameter")

    async def _lookup_code(self, code: str) -> ToolResult:
        if code in COMMON_CODES:
            return ToolResult.ok(
                data=self._output(code, COMMON_CODES[code], is_valid=True),
                source="local",
            )

        if not MENTAL_HEALTH_CODE_PATTERN.match(code):
            return ToolResult.ok(data=self._output(code, "Invalid code format", is_valid=False))

        try:
            match = await self._search(code)
        except httpx.HTTPError as e:
            return ToolResult.ok(
                data=self._output(code, "Code not in local database", is_valid=True),
                api_error=str(e),
            )

        if match and match[0].upper() == code:
            return ToolResult.ok(data=self._output(code, match[1], is_valid=True), source="nih")
        return ToolResult.ok(data=self._output(code, "Code not in local database", is_valid=True))

    async def _lookup_description(self, description: str) -> ToolResult:
        try:
            match = await self._search(description)
        except httpx.TimeoutException:
            return ToolResult.fail(f"API timeout looking up: {description}", search_term=description)
        except httpx.HTTPStatusError as e:
            return ToolResult.fail(
                f"API error ({e.response.status_code}): {e}", search_term=description
            )
        except httpx.HTTPError as e:
            return ToolResult.fail(f"ICD-10 lookup failed: {e}", search_term=description)

        if match is None:
            return ToolResult.fail(f"No ICD-10 code found for: {description}", search_term=description)

        code, display = match
        return ToolResult.ok(
            data=self._output(code, display, is_valid=True),
            source="nih",
            search_term=description,
        )

    async def _search(self, terms: str) -> Optional[Tuple[str, str]]:
        """Best (code, name) match from the NIH API, or None."""
        client = await self._get_client()
        response = await client.get(
            ICD10_API_BASE,
            params={"terms": terms, "maxList": self.max_results, "sf": "code,name"},
        )
        response.raise_for_status()

        # Response shape: [count, [codes], null, [[code, name], ...]]
        data = response.json()
        if not data or len(data) < 4 or data[0] == 0 or not data[1]:
            return None

        best_code = data[1][0]
        display = data[3][0] if data[3] else [best_code, terms]
        if isinstance(display, list):
            display = display[1] if len(display) > 1 else display[0]
        return best_code, display

    @staticmethod
    def _output(code: str, description: str, is_valid: bool) -> Dict[str, Any]:
        return {
            "code": code,
            "description": description,
            "is_valid": is_valid,
            "code_system": "ICD-10" if is_valid and code.startswith("F") else "Unknown",
        }
