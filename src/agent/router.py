"""Task-based model selection."""
from enum import Enum

from src.config import settings


class ModelTask(str, Enum):
    DOCUMENT_INTAKE = "document_intake"
    EXTRACTION = "extraction"
    EXTRACTION_SIMPLE = "extraction_simple"
    RISK_ASSESSMENT = "risk_assessment"
    SUMMARIZATION = "summarization"
    EMBEDDING = "embedding"


class ModelRouter:
    """Maps each pipeline task to the configured model name"""

    def select_model(self, task: ModelTask) -> str:
        models = {
            ModelTask.DOCUMENT_INTAKE: settings.intake_model,
            ModelTask.EXTRACTION: settings.extraction_model,
            ModelTask.EXTRACTION_SIMPLE: settings.extraction_simple_model,
            ModelTask.RISK_ASSESSMENT: settings.risk_model,
            ModelTask.SUMMARIZATION: settings.summarization_model,
            ModelTask.EMBEDDING: settings.embedding_model,
        }
        model = models.get(task) or settings.llm_model
        if not model:
            raise ValueError(f"No model configured for task: {task.value}")
        return model
