"""
Agent Tool Tests

Covers:
1. ToolExecutor dispatch and failure modes
2. check_risk_keywords, score_confidence and validate_schema
3. lookup_diagnosis_code with a mocked HTTP client
"""
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from src.agent.tools import (
    CheckRiskKeywordsTool,
    LookupDiagnosisCodeTool,
    ScoreConfidenceTool,
    Tool,
    ToolExecutor,
    ToolResult,
    ValidateSchemaTool,
)


class EchoTool(Tool):
    name = "echo"
    description = "Echo the arguments back"
    parameters = {"type": "object", "properties": {}}

    async def execute(self, arguments):
        return ToolResult.ok(data=arguments)


class ExplodingTool(Tool):
    name = "explode"
    description = "Always raises"
    parameters = {"type": "object", "properties": {}}

    async def execute(self, arguments):
        raise RuntimeError("boom")


def mock_http_client(payload=None, error: Exception = None) -> AsyncMock:
    client = AsyncMock()
    client.is_closed = False
    if error is not None:
        client.get.side_effect = error
    else:
        response = Mock()
        response.raise_for_status = Mock()
        response.json.return_value = payload
        client.get.return_value = response
    return client


# ============================================================================
# ToolResult / ToolExecutor
# ============================================================================

class TestToolResult:

    def test_ok_payload_is_data(self):
        result = ToolResult.ok(data={"a": 1}, source="local")
        assert result.success
        assert result.to_payload() == {"a": 1}
        assert result.metadata["source"] == "local"
        assert "timestamp" in result.metadata

    def test_fail_payload_is_error(self):
        result = ToolResult.fail("nope")
        assert not result.success
        assert result.to_payload() == {"error": "nope"}


class TestToolExecutor:

    @pytest.mark.asyncio
    async def test_dispatches_by_name(self):
        executor = ToolExecutor([EchoTool()])
        result = await executor.execute("echo", '{"x": 1}')
        assert result.success
        assert result.data == {"x": 1}

    @pytest.mark.asyncio
    async def test_empty_arguments_are_empty_object(self):
        result = await ToolExecutor([EchoTool()]).execute("echo", "")
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await ToolExecutor([EchoTool()]).execute("missing", "{}")
        assert not result.success
        assert result.error == "Unknown tool: missing"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        result = await ToolExecutor([EchoTool()]).execute("echo", "{not json")
        assert result.error.startswith("Invalid JSON input")

    @pytest.mark.asyncio
    async def test_non_object_arguments(self):
        result = await ToolExecutor([EchoTool()]).execute("echo", "[1, 2]")
        assert result.error.startswith("Invalid JSON input")

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_failure(self):
        result = await ToolExecutor([ExplodingTool()]).execute("explode", "{}")
        assert result.error == "Tool execution failed: boom"

    def test_duplicate_registration_rejected(self):
        executor = ToolExecutor([EchoTool()])
        with pytest.raises(ValueError):
            executor.register(EchoTool())

    def test_definitions(self):
        executor = ToolExecutor([EchoTool(), CheckRiskKeywordsTool()])
        assert executor.tool_names == ["echo", "check_risk_keywords"]
        assert executor.definitions()[1]["parameters"]["required"] == ["text"]


# ============================================================================
# Risk keyword / scoring / validation tools
# ============================================================================

class TestCheckRiskKeywordsTool:

    @pytest.mark.asyncio
    async def test_reports_matches(self):
        result = await CheckRiskKeywordsTool().execute(
            {"text": "Client stated \"I want to die\" on bad days."}
        )
        assert result.success
        assert result.data["has_risk_indicators"] is True
        assert result.data["suicidal_matches"]

    @pytest.mark.asyncio
    async def test_missing_text(self):
        result = await CheckRiskKeywordsTool().execute({})
        assert result.error == "Missing required 'text' parameter"


class TestScoreConfidenceTool:

    @pytest.mark.asyncio
    async def test_scores_draft(self):
        draft = {
            "session_info": {"session_date": {"value": "2024-03-15", "confidence": 0.9}},
            "presenting_concerns": {"primary_concern": {"value": "Insomnia", "confidence": 0.5}},
        }
        result = await ScoreConfidenceTool().execute({"extraction": draft})
        assert result.data["overall_confidence"] == pytest.approx(0.7)
        assert result.data["low_confidence_fields"] == ["PresentingConcerns.primary_concern"]
        assert result.data["threshold"] == 0.7

    @pytest.mark.asyncio
    async def test_custom_threshold(self):
        draft = {"session_info": {"session_date": {"value": "2024-03-15", "confidence": 0.9}}}
        result = await ScoreConfidenceTool().execute({"extraction": draft, "threshold": 0.95})
        assert result.data["low_confidence_fields"] == ["SessionInfo.session_date"]

    @pytest.mark.asyncio
    async def test_missing_extraction(self):
        result = await ScoreConfidenceTool().execute({"threshold": 0.5})
        assert not result.success


class TestValidateSchemaTool:

    @pytest.mark.asyncio
    async def test_reports_business_rule_errors(self):
        result = await ValidateSchemaTool().execute({"extraction": {}})
        assert result.success
        assert result.data["is_valid"] is False
        assert result.data["errors"][0]["field"] == "SessionInfo.session_date"

    @pytest.mark.asyncio
    async def test_valid_draft(self):
        draft = {"session_info": {"session_date": {"value": "2024-03-15", "confidence": 0.9}}}
        result = await ValidateSchemaTool().execute({"extraction": draft})
        assert result.data == {"is_valid": True, "errors": []}

    @pytest.mark.asyncio
    async def test_schema_errors_are_a_result(self):
        draft = {"mood_assessment": {"self_reported_mood": {"value": "not-a-number", "confidence": 0.9}}}
        result = await ValidateSchemaTool().execute({"extraction": draft})
        assert result.success
        assert result.data["is_valid"] is False
        assert result.data["errors"]


# ============================================================================
# Diagnosis code lookup
# ============================================================================

class TestLookupDiagnosisCodeTool:

    @pytest.mark.asyncio
    async def test_local_code(self):
        client = mock_http_client()
        tool = LookupDiagnosisCodeTool(client=client)
        result = await tool.execute({"code": "f41.1"})
        assert result.data["description"] == "Generalized anxiety disorder"
        assert result.data["code_system"] == "ICD-10"
        assert result.metadata["source"] == "local"
        client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_format(self):
        tool = LookupDiagnosisCodeTool(client=mock_http_client())
        result = await tool.execute({"code": "E11.9"})
        assert result.success
        assert result.data["is_valid"] is False
        assert result.data["description"] == "Invalid code format"
        assert result.data["code_system"] == "Unknown"

    @pytest.mark.asyncio
    async def test_code_resolved_by_api(self):
        payload = [1, ["F40.10"], None, [["F40.10", "Social phobia, unspecified"]]]
        tool = LookupDiagnosisCodeTool(client=mock_http_client(payload))
        result = await tool.execute({"code": "F40.10"})
        assert result.data["description"] == "Social phobia, unspecified"
        assert result.metadata["source"] == "nih"

    @pytest.mark.asyncio
    async def test_api_error_degrades_gracefully(self):
        tool = LookupDiagnosisCodeTool(client=mock_http_client(error=httpx.ConnectError("down")))
        result = await tool.execute({"code": "F40.10"})
        assert result.success
        assert result.data["description"] == "Code not in local database"
        assert "api_error" in result.metadata

    @pytest.mark.asyncio
    async def test_description_search(self):
        payload = [2, ["F41.1", "F41.9"], None, [["F41.1", "Generalized anxiety disorder"]]]
        client = mock_http_client(payload)
        tool = LookupDiagnosisCodeTool(client=client, max_results=3)
        result = await tool.execute({"description": "generalized anxiety"})
        assert result.data["code"] == "F41.1"
        params = client.get.call_args.kwargs["params"]
        assert params["terms"] == "generalized anxiety"
        assert params["maxList"] == 3

    @pytest.mark.asyncio
    async def test_description_not_found(self):
        tool = LookupDiagnosisCodeTool(client=mock_http_client([0, [], None, []]))
        result = await tool.execute({"description": "made up condition"})
        assert result.error == "No ICD-10 code found for: made up condition"

    @pytest.mark.asyncio
    async def test_description_timeout(self):
        tool = LookupDiagnosisCodeTool(client=mock_http_client(error=httpx.ReadTimeout("slow")))
        result = await tool.execute({"description": "panic"})
        assert result.error.startswith("API timeout")

    @pytest.mark.asyncio
    async def test_missing_arguments(self):
        result = await LookupDiagnosisCodeTool(client=mock_http_client()).execute({})
        assert result.error == "Missing required 'code' parameter"

    @pytest.mark.asyncio
    async def test_close(self):
        client = mock_http_client()
        tool = LookupDiagnosisCodeTool(client=client)
        await tool.close()
        client.aclose.assert_awaited_once()

    def test_payload_is_json_serializable(self):
        result = ToolResult.ok(data=LookupDiagnosisCodeTool._output("F32.1", "MDD", True))
        assert json.loads(json.dumps(result.to_payload()))["code"] == "F32.1"
