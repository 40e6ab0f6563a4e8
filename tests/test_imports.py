"""
Import order tests

Each public module must import on its own in a fresh interpreter, whatever
else has or has not been loaded first.
"""
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


@pytest.mark.parametrize("module", [
    "src.agent.orchestrator",
    "src.agent.loop",
    "src.agent.extractor",
    "src.agent.risk_assessor",
    "src.agent.tools",
    "src.validation",
    "src.validation.confidence",
    "src.risk",
    "src.risk.merger",
    "src.services.repository",
    "src.services.indexing",
])
def test_module_imports_in_fresh_interpreter(module):
    completed = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT,
        capture_output=True,
        text=True,
        timeout=120,
    )
    assert completed.returncode == 0, completed.stderr
