"""
Trajectory Logger - stage-by-stage audit trail of a pipeline run.

Each stage of a run (parsing, validating, extracting, ...) is recorded with
its status, timing, a short output summary and any error. The trajectory is
returned on the orchestration result so callers can see exactly where a run
failed or which best-effort stages were degraded.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import json


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    """Status of a pipeline stage."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TrajectoryStep:
    """One stage execution within a run."""
    step_number: int
    stage: str
    status: StepStatus = StepStatus.RUNNING

    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    output_summary: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, output_summary: str = None, **metadata):
        self.status = StepStatus.SUCCESS
        self.output_summary = output_summary
        self.metadata.update(metadata)
        self._finish()

    def fail(self, error: str, error_type: str = None):
        self.status = StepStatus.FAILED
        self.error = error
        self.error_type = error_type
        self._finish()

    def skip(self, reason: str = None):
        self.status = StepStatus.SKIPPED
        if reason:
            self.metadata["skip_reason"] = reason
        self._finish()

    def _finish(self):
        self.completed_at = _now()
        self.duration_ms = (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict:
        result = {
            "step_number": self.step_number,
            "stage": self.stage,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "output_summary": self.output_summary,
        }
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        if self.metadata:
            result["metadata"] = self.metadata
        return result


@dataclass
class Trajectory:
    """Complete record of one pipeline run."""
    agent_name: str
    input_summary: Optional[str] = None
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    steps: List[TrajectoryStep] = field(default_factory=list)
    success: bool = False
    final_error: Optional[str] = None

    @property
    def total_duration_ms(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds() * 1000
        return None

    def step(self, stage: str) -> Optional[TrajectoryStep]:
        """Most recent step for a stage."""
        for s in reversed(self.steps):
            if s.stage == stage:
                return s
        return None

    def get_statistics(self) -> dict:
        return {
            "total_steps": len(self.steps),
            "successful_steps": sum(1 for s in self.steps if s.status == StepStatus.SUCCESS),
            "failed_steps": sum(1 for s in self.steps if s.status == StepStatus.FAILED),
            "skipped_steps": sum(1 for s in self.steps if s.status == StepStatus.SKIPPED),
            "total_duration_ms": self.total_duration_ms,
        }

    def to_dict(self) -> dict:
        return {
            "agent_name": self.agent_name,
            "input_summary": self.input_summary,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "success": self.success,
            "final_error": self.final_error,
            "statistics": self.get_statistics(),
            "steps": [s.to_dict() for s in self.steps],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def __repr__(self) -> str:
        status = "SUCCESS" if self.success else "FAILED"
        return f"<Trajectory: {self.agent_name} [{status}] {len(self.steps)} steps>"


class TrajectoryLogger:
    """
    Helper for recording stages as a run progresses.

    Usage:
        trajectory = TrajectoryLogger("PipelineOrchestrator", input_summary="session abc")

        step = trajectory.start_step("extracting")
        try:
            result = await extractor.extract(intake)
            trajectory.complete_step(step, "confidence 0.91")
        except ExtractionError as e:
            trajectory.fail_step(step, e)
    """

    def __init__(self, agent_name: str, input_summary: str = None):
        self.trajectory = Trajectory(agent_name=agent_name, input_summary=input_summary)

    def start_step(self, stage: str) -> TrajectoryStep:
        step = TrajectoryStep(step_number=len(self.trajectory.steps) + 1, stage=stage)
        self.trajectory.steps.append(step)
        return step

    def complete_step(self, step: TrajectoryStep, output_summary: str = None, **metadata):
        step.complete(output_summary, **metadata)

    def fail_step(self, step: TrajectoryStep, error: BaseException):
        step.fail(str(error) or type(error).__name__, type(error).__name__)

    def complete(self, success: bool = True, error: str = None):
        self.trajectory.completed_at = _now()
        self.trajectory.success = success
        self.trajectory.final_error = error

    def get_trajectory(self) -> Trajectory:
        return self.trajectory
