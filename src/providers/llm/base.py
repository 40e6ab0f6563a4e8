import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Transcript messages use the chat-completions shape:
#   {"role": "system" | "user" | "assistant" | "tool", "content": ..., ...}
Message = Dict[str, Any]


@dataclass
class ToolCall:
    """A tool invocation requested by the model"""
    id: str
    name: str
    arguments: str = "{}"  # raw JSON


@dataclass
class Completion:
    """One provider turn: either tool calls or final text"""
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"  # normalized: 'stop', 'tool_calls', 'length', ...
    model: Optional[str] = None


def system_message(content: str) -> Message:
    return {"role": "system", "content": content}


def user_message(content: str) -> Message:
    return {"role": "user", "content": content}


def assistant_message(completion: Completion) -> Message:
    message: Message = {"role": "assistant", "content": completion.content}
    if completion.tool_calls:
        message["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in completion.tool_calls
        ]
    return message


def tool_message(tool_call_id: str, payload: Any) -> Message:
    return {"role": "tool", "tool_call_id": tool_call_id, "content": json.dumps(payload, default=str)}


class LLMProvider(ABC):
    """Abstract base class for LLM completion providers"""

    @abstractmethod
    async def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """
        Run one completion turn.

        Args:
            messages: Transcript so far
            tools: Tool definitions ({name, description, parameters})
            response_format: 'json_object' to request JSON output
            temperature: Sampling temperature override
        """
        pass

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate completion from a single prompt"""
        completion = await self.complete([user_message(prompt)], **kwargs)
        return completion.content or ""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return provider identifier"""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Return model name"""
        pass
