import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base

SCHEMA_VERSION = "1.0.0"


def utcnow():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class DocumentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TherapySession(Base):
    """A scheduled or completed therapy session"""
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(64), nullable=False, index=True)
    therapist_id = Column(String(64), nullable=True)
    session_date = Column(Date, nullable=False)
    session_type = Column(String(50), nullable=True)
    session_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    document = relationship(
        "SessionDocument", back_populates="session", uselist=False, cascade="all, delete-orphan"
    )
    extraction = relationship(
        "ExtractionRecord", back_populates="session", uselist=False, cascade="all, delete-orphan"
    )


class SessionDocument(Base):
    """Uploaded note file for a session and its processing status"""
    __tablename__ = "session_documents"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=False, unique=True, index=True)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), default="text/plain")
    file_data = Column(LargeBinary, nullable=False)
    status = Column(Enum(DocumentStatus), default=DocumentStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)
    extracted_text = Column(Text, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

    session = relationship("TherapySession", back_populates="document")


class ExtractionRecord(Base):
    """
    Persisted pipeline output for one session.

    extraction_data holds the full ClinicalExtraction (with the merged risk
    section) as JSON. The guardrail and criteria columns are copied out of
    the risk diagnostics so reviewers can query them directly;
    risk_field_decisions keeps the per-field decision trail.
    """
    __tablename__ = "extraction_results"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=False, unique=True, index=True)
    schema_version = Column(String(20), default=SCHEMA_VERSION, nullable=False)
    model_used = Column(String(255), nullable=False)
    overall_confidence = Column(Float, default=0.0)
    requires_review = Column(Boolean, default=False, nullable=False)
    review_reasons = Column(JSON, default=list)
    low_confidence_fields = Column(JSON, default=list)
    extraction_data = Column(JSON, nullable=False)
    summary_data = Column(JSON, nullable=True)

    homicidal_guardrail_applied = Column(Boolean, default=False)
    homicidal_guardrail_reason = Column(Text, nullable=True)
    self_harm_guardrail_applied = Column(Boolean, default=False)
    self_harm_guardrail_reason = Column(Text, nullable=True)
    criteria_validation_attempts = Column(Integer, default=0)
    risk_discrepancy_count = Column(Integer, default=0)
    risk_field_decisions = Column(JSON, default=list)

    extracted_at = Column(DateTime, default=utcnow)

    session = relationship("TherapySession", back_populates="extraction")
