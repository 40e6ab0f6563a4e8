#!/usr/bin/env python3
"""
Run the session-note pipeline on one note file.

Stores the note as a new session with an uploaded document, processes it,
and prints the outcome plus the stage trajectory.

Usage:
    python scripts/process_note.py notes/session_01.txt --patient-id P-1042 --session-date 2024-03-15
"""
import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path to import src modules
sys.path.append(str(Path(__file__).parent.parent))

from src.agent.orchestrator import PipelineOrchestrator
from src.database import get_db, init_db
from src.logging_config import setup_logging
from src.models import SessionDocument, TherapySession


def create_session(note_path: Path, patient_id: str, session_date: date) -> str:
    """Insert a session with the note attached; returns the session id"""
    with get_db() as db:
        session = TherapySession(patient_id=patient_id, session_date=session_date)
        session.document = SessionDocument(
            filename=note_path.name,
            content_type="text/markdown" if note_path.suffix.lower() in (".md", ".markdown") else "text/plain",
            file_data=note_path.read_bytes(),
        )
        db.add(session)
        db.flush()
        return session.id


async def run(note_path: Path, patient_id: str, session_date: date) -> bool:
    session_id = create_session(note_path, patient_id, session_date)
    print(f"📋 Processing session {session_id} ({note_path.name})\n")

    result = await PipelineOrchestrator().process_session(session_id)

    if result.success:
        print(f"✅ Completed in {result.elapsed_ms:.0f} ms (extraction {result.extraction_id})")
        print(f"   Models: {result.model_used}")
        print(f"   Requires review: {result.requires_review}")
        if result.summary_error:
            print(f"   ⚠️  Summary skipped: {result.summary_error}")
        if result.indexing_error:
            print(f"   ⚠️  Indexing skipped: {result.indexing_error}")
    else:
        print(f"❌ Failed during {result.stage.value}: {result.error_message}")

    if result.trajectory:
        print("\nTrajectory:")
        print(result.trajectory.to_json())
    return result.success


def main():
    parser = argparse.ArgumentParser(description="Process one therapy session note")
    parser.add_argument("note", type=Path, help="Path to a .txt or .md session note")
    parser.add_argument("--patient-id", default="demo-patient")
    parser.add_argument("--session-date", type=date.fromisoformat, default=date.today())
    args = parser.parse_args()

    if not args.note.exists():
        print(f"⚠️  Note not found: {args.note}")
        sys.exit(1)

    setup_logging()
    init_db()

    success = asyncio.run(run(args.note, args.patient_id, args.session_date))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
