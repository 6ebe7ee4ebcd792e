"""JSON-based file storage for security and audit reports.

Persists generated reports under the configured report path, one
sub-directory per report kind, so they can be listed and reloaded later.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal, Protocol

from pydantic import BaseModel

from provider_security.exceptions import ReportPersistenceError
from provider_security.models import AuditReport, SecurityReport

logger = logging.getLogger(__name__)

ReportKind = Literal["comprehensive", "audit"]

REPORT_MODELS: dict[str, type[BaseModel]] = {
    "comprehensive": SecurityReport,
    "audit": AuditReport,
}


class ReportSink(Protocol):
    """Anything that can persist a report and return where it went."""

    def save_report(self, report: BaseModel, kind: str) -> str: ...


class ReportStorage:
    """Manages persistence of generated reports."""

    def __init__(self, base_path: str) -> None:
        self.base_path = Path(base_path)

    def _kind_path(self, kind: str) -> Path:
        if kind not in REPORT_MODELS:
            raise ValueError(f"Unknown report kind: {kind}")
        return self.base_path / kind

    def save_report(self, report: BaseModel, kind: str) -> str:
        """Persist a report to disk.

        Args:
            report: A SecurityReport or AuditReport.
            kind: ``"comprehensive"`` or ``"audit"``.

        Returns:
            The path of the written file.

        Raises:
            ReportPersistenceError: If the file cannot be written.
        """
        directory = self._kind_path(kind)
        file_path = directory / f"{report.id}.json"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_path.write_text(report.model_dump_json(indent=2))
        except OSError as exc:
            raise ReportPersistenceError(
                f"Failed to write {kind} report {report.id}: {exc}",
                details={"path": str(file_path)},
            ) from exc
        logger.info("Saved %s report %s to %s", kind, report.id, file_path)
        return str(file_path)

    def load_report(self, report_id: str, kind: str = "comprehensive") -> BaseModel:
        """Load a report by ID.

        Raises:
            FileNotFoundError: If the report file does not exist.
        """
        file_path = self._kind_path(kind) / f"{report_id}.json"
        if not file_path.exists():
            raise FileNotFoundError(f"Report not found: {report_id}")
        return REPORT_MODELS[kind].model_validate_json(file_path.read_text())

    def list_reports(self, kind: str = "comprehensive", limit: int = 50) -> list[dict]:
        """List stored reports, newest first, skipping unreadable files."""
        directory = self._kind_path(kind)
        if not directory.exists():
            return []
        results: list[dict] = []
        files = sorted(directory.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)

        for file_path in files:
            if len(results) >= limit:
                break
            try:
                data = json.loads(file_path.read_text())
                results.append({
                    "id": data["id"],
                    "kind": kind,
                    "generated_at": data.get("generated_at"),
                    "path": str(file_path),
                })
            except (json.JSONDecodeError, KeyError) as exc:
                logger.warning("Skipping corrupt report file %s: %s", file_path, exc)
                continue

        return results
