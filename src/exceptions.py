"""
Pipeline error hierarchy.

Stage agents raise these; the orchestrator maps them to a failed run.
Tools never raise them - tool problems are returned as ToolResult.fail().
"""


class PipelineError(Exception):
    """Base class for errors that fail a pipeline stage."""


class DocumentParseError(PipelineError):
    """The document could not be converted to text."""


class DocumentTooLargeError(DocumentParseError):
    """The document exceeds the configured size or page limit."""


class DocumentValidationError(PipelineError):
    """Intake rejected the document as not being a therapy session note."""


class ExtractionError(PipelineError):
    """Clinical extraction did not produce a usable result."""


class ExtractionParseError(ExtractionError):
    """The model's extraction response was not valid JSON for the schema."""


class RiskAssessmentError(PipelineError):
    """The risk assessment stage failed."""


class EmbeddingTimeoutError(PipelineError, TimeoutError):
    """An embedding call exceeded its time bound."""


class SearchIndexTimeoutError(PipelineError, TimeoutError):
    """A search index call exceeded its time bound."""
