"""
Materialization of repair results.

The ResultWriter turns the outcome of a search into files in the output
directory: a JSON result record describing the outcome and, when a fix was
accepted, a copy of the fixed source files laid out like the project.
"""

import json
import logging
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from arcfix.population import Individual
from arcfix.types import Exhausted, Fatal, Fixed, RepairResult

logger = logging.getLogger(__name__)

RESULT_FILE = "arc_result.json"
SOLUTION_DIR = "solution"


def result_record(result: RepairResult) -> dict[str, Any]:
    """Describe a search outcome as plain, JSON-serializable data."""
    if isinstance(result, Fixed):
        individual = result.individual
        return {
            "outcome": "fixed",
            "individual": {
                "generation": individual.generation,
                "id": individual.id,
                "path": str(individual.path),
                "score": individual.score,
            },
            "lineage": list(result.lineage),
            "baseline_summary": result.baseline_summary.to_dict(include_results=True),
            "validation_summary": result.validation_summary.to_dict(),
        }
    if isinstance(result, Exhausted):
        return {
            "outcome": "exhausted",
            "generations": result.generations,
            "stopped": result.stopped,
        }
    if isinstance(result, Fatal):
        return {"outcome": "fatal", "reason": result.reason}
    raise TypeError(f"Unknown repair result: {result!r}")


class ResultWriter:
    """Write result records and fixed sources to ``output_dir``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def write_result(
        self,
        result: RepairResult,
        stats: dict[str, Any] | None = None,
        history: list[dict[str, Any]] | None = None,
    ) -> Path:
        """Write the result record and return its path."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        record = result_record(result)
        record["written_at"] = datetime.now(timezone.utc).isoformat()
        if stats is not None:
            record["stats"] = stats
        if history is not None:
            record["phases"] = history
        path = self.output_dir / RESULT_FILE
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, default=str)
        print(f"[+] Result record written to {path}", file=sys.stderr)
        return path

    def copy_solution(self, individual: Individual, source_files: list[str]) -> list[Path]:
        """Copy the fixed source files of ``individual`` into the output directory.

        Missing files are skipped with a warning.
        """
        target_root = self.output_dir / SOLUTION_DIR
        copied: list[Path] = []
        for rel in source_files:
            src = individual.path / rel
            if not src.is_file():
                logger.warning(f"  [!] Solution file missing: {src}")
                continue
            dst = target_root / rel
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            copied.append(dst)
        print(f"[+] Copied {len(copied)} fixed source file(s) to {target_root}", file=sys.stderr)
        return copied
