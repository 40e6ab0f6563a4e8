"""
Tool contract for the agent loop.

A tool is advertised to the completion provider by name, description and a
JSON schema of its arguments. When the model calls it, the loop decodes the
arguments and awaits execute(). Bad arguments and lookup misses come back as
ToolResult.fail() so the model can see the error and carry on.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _stamp() -> Dict[str, Any]:
    return {"timestamp": datetime.now(timezone.utc).isoformat()}


@dataclass
class ToolResult:
    """Outcome of one tool call; `data` must be JSON-serializable."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=_stamp)

    @classmethod
    def ok(cls, data: Any, **metadata) -> "ToolResult":
        return cls(success=True, data=data, metadata={**_stamp(), **metadata})

    @classmethod
    def fail(cls, error: str, **metadata) -> "ToolResult":
        return cls(success=False, error=error, metadata={**_stamp(), **metadata})

    def to_payload(self) -> Any:
        """Body of the tool message sent back to the model."""
        return self.data if self.success else {"error": self.error}


class Tool(ABC):
    """Base class for the loop's callable tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Shown to the model to decide when to call the tool."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> Dict[str, Any]:
        """JSON schema (type: object) for execute()'s arguments."""
        ...

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        ...

    def definition(self) -> Dict[str, Any]:
        """Vendor-neutral definition; each LLM provider converts it to its own tool format."""
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
