"""
Therapy note extraction agents.

Components:
- PipelineOrchestrator (src.agent.orchestrator): runs a session through every stage
- IntakeAgent, ClinicalExtractorAgent, RiskAssessorAgent, SummarizerAgent: one per model stage
- AgentLoop (src.agent.loop): bounded tool-calling conversation used by each agent
- Models: the nine-section ClinicalExtraction schema
- Trajectory: stage-by-stage audit trail

Usage:
    from src.agent.orchestrator import PipelineOrchestrator

    result = await PipelineOrchestrator().process_session(session_id)
    if result.success and result.requires_review:
        ...

Agents are imported from their modules; this package only re-exports the
schema and trajectory types, which have no service dependencies.
"""
from src.agent.models import (
    ClinicalExtraction,
    ExtractedField,
    RiskAssessment,
    SuicidalIdeation,
    SelfHarm,
    HomicidalIdeation,
    RiskLevelOverall,
)
from src.agent.trajectory import Trajectory, TrajectoryStep, TrajectoryLogger

__all__ = [
    # Models
    "ClinicalExtraction",
    "ExtractedField",
    "RiskAssessment",
    "SuicidalIdeation",
    "SelfHarm",
    "HomicidalIdeation",
    "RiskLevelOverall",

    # Trajectory
    "Trajectory",
    "TrajectoryStep",
    "TrajectoryLogger",
]
