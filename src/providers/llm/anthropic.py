import json
from typing import Any, Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic
from tenacity import retry, stop_after_attempt, wait_exponential

from .base import Completion, LLMProvider, Message, ToolCall

# Anthropic stop reasons → chat-completions finish reasons
_FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}

class AnthropicProvider(LLMProvider):
    """Anthropic messages provider with tool calling and automatic retries"""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5", max_tokens: int = 4096):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10))
    async def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """Run one completion turn via the Anthropic API"""
        system, converted = self._convert_messages(messages)
        if response_format == "json_object":
            system = (system + "\n\n" if system else "") + "Respond with a single JSON object only."

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
                for t in tools
            ]
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self.client.messages.create(**kwargs)

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))

        return Completion(
            content="".join(text_parts) or None,
            tool_calls=tool_calls,
            finish_reason=_FINISH_REASONS.get(response.stop_reason, response.stop_reason or "stop"),
            model=response.model or self.model,
        )

    @staticmethod
    def _convert_messages(messages: List[Message]) -> Tuple[str, List[Dict[str, Any]]]:
        """Split out the system prompt and map tool traffic to content blocks."""
        system_parts = []
        converted: List[Dict[str, Any]] = []

        for message in messages:
            role = message["role"]
            if role == "system":
                system_parts.append(message["content"])
            elif role == "assistant":
                blocks = []
                if message.get("content"):
                    blocks.append({"type": "text", "text": message["content"]})
                for call in message.get("tool_calls", []):
                    blocks.append({
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["function"]["name"],
                        "input": json.loads(call["function"]["arguments"] or "{}"),
                    })
                converted.append({"role": "assistant", "content": blocks})
            elif role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message["tool_call_id"],
                    "content": message["content"],
                }
                # Consecutive tool results belong in one user turn
                if converted and converted[-1]["role"] == "user" and isinstance(converted[-1]["content"], list):
                    converted[-1]["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            else:
                converted.append({"role": "user", "content": message["content"]})

        return "\n\n".join(system_parts), converted

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
