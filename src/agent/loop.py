"""
Agent Loop - bounded tool-calling conversation with a completion provider.

Each turn the provider either requests tool calls or returns a final answer.
Tool calls from one turn run concurrently; their results are appended in
the order the provider requested them, since providers match results to
calls by position.

The loop ends with:
- COMPLETE: the provider stopped cleanly without tool calls
- PARTIAL: tool-call ceiling reached, our own timeout fired, or any other
  finish reason (length, content filter, ...)

Caller cancellation (task.cancel() or a set cancel_event) raises
asyncio.CancelledError instead, so it is never confused with a timeout.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.agent.tools.base import ToolResult
from src.agent.tools.executor import ToolExecutor
from src.config import settings
from src.logging_config import get_logger
from src.providers.llm.base import (
    Completion,
    LLMProvider,
    Message,
    ToolCall,
    assistant_message,
    tool_message,
)

logger = get_logger(__name__)


class AgentLoopStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"


@dataclass
class AgentLoopResult:
    """Terminal value of one AgentLoop.run() call."""
    status: AgentLoopStatus
    tool_call_count: int
    content: Optional[str] = None
    partial_reason: Optional[str] = None
    timed_out: bool = False
    model: Optional[str] = None
    transcript: List[Message] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.status == AgentLoopStatus.COMPLETE


class AgentLoop:
    """
    Drives a provider/tool conversation until a terminal condition.

    Usage:
        loop = AgentLoop(provider, ToolExecutor([CheckRiskKeywordsTool()]))
        result = await loop.run([system_message(...), user_message(note)])
        if result.is_complete:
            data = parse_json_object(result.content)
    """

    def __init__(
        self,
        provider: LLMProvider,
        executor: Optional[ToolExecutor] = None,
        max_tool_calls: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.provider = provider
        self.executor = executor or ToolExecutor()
        self.max_tool_calls = max_tool_calls if max_tool_calls is not None else settings.agent_max_tool_calls
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.agent_timeout_seconds

    async def run(
        self,
        messages: List[Message],
        response_format: Optional[str] = None,
        temperature: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentLoopResult:
        """
        Run the loop to a terminal condition.

        Args:
            messages: Initial transcript (system + user messages)
            response_format: Passed through to the provider ('json_object')
            temperature: Passed through to the provider
            cancel_event: Caller cancellation signal, checked before each provider call

        Returns:
            AgentLoopResult (COMPLETE or PARTIAL)

        Raises:
            asyncio.CancelledError: If the caller cancelled
        """
        transcript = list(messages)
        tool_call_count = 0
        model = self.provider.get_model_name()
        deadline = time.monotonic() + self.timeout_seconds
        tools = self.executor.definitions() or None

        while True:
            if tool_call_count >= self.max_tool_calls:
                return self._partial(
                    f"Tool limit ({self.max_tool_calls}) exceeded - extraction incomplete",
                    tool_call_count, transcript, model,
                )

            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError("Cancelled by caller")

            try:
                completion: Completion = await self._bounded(
                    self.provider.complete(
                        transcript,
                        tools=tools,
                        response_format=response_format,
                        temperature=temperature,
                    ),
                    deadline,
                )
                model = completion.model or model

                if completion.tool_calls:
                    transcript.append(assistant_message(completion))
                    allowed = self.max_tool_calls - tool_call_count
                    results = await self._bounded(
                        self._dispatch(completion.tool_calls, allowed), deadline
                    )
                    tool_call_count += min(len(completion.tool_calls), allowed)
                    for call, result in zip(completion.tool_calls, results):
                        transcript.append(tool_message(call.id, result.to_payload()))
                    continue

            except asyncio.TimeoutError:
                return self._partial(
                    f"Timed out after {self.timeout_seconds:g}s - extraction incomplete",
                    tool_call_count, transcript, model, timed_out=True,
                )

            if completion.finish_reason == "stop":
                transcript.append(assistant_message(completion))
                logger.info(
                    "agent_loop_completed",
                    model=model,
                    tool_call_count=tool_call_count,
                )
                return AgentLoopResult(
                    status=AgentLoopStatus.COMPLETE,
                    content=completion.content,
                    tool_call_count=tool_call_count,
                    model=model,
                    transcript=transcript,
                )

            return self._partial(
                f"Unexpected completion: {completion.finish_reason}",
                tool_call_count, transcript, model,
            )

    async def _dispatch(self, calls: List[ToolCall], allowed: int) -> List[ToolResult]:
        """Run up to ``allowed`` calls concurrently; results keep request order."""
        executed = calls[:allowed]
        results = list(await asyncio.gather(
            *(self.executor.execute(call.name, call.arguments) for call in executed)
        ))
        # Every requested call still needs a positional result
        for _ in calls[allowed:]:
            results.append(ToolResult.fail(f"Tool limit ({self.max_tool_calls}) exceeded"))
        return results

    @staticmethod
    async def _bounded(awaitable: Any, deadline: float) -> Any:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            # Close the coroutine without running it
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise asyncio.TimeoutError()
        return await asyncio.wait_for(awaitable, timeout=remaining)

    @staticmethod
    def _partial(
        reason: str,
        tool_call_count: int,
        transcript: List[Message],
        model: Optional[str],
        timed_out: bool = False,
    ) -> AgentLoopResult:
        logger.warning(
            "agent_loop_partial",
            reason=reason,
            tool_call_count=tool_call_count,
            timed_out=timed_out,
        )
        return AgentLoopResult(
            status=AgentLoopStatus.PARTIAL,
            partial_reason=reason,
            tool_call_count=tool_call_count,
            timed_out=timed_out,
            model=model,
            transcript=transcript,
        )
