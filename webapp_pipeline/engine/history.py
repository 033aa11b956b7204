"""
Build history - persisted build records with count-based retention.
"""

import json
from pathlib import Path
from typing import List, Optional, Dict, Any

from ..core.logger import get_logger
from ..core.security import InputValidator
from ..models.report import PipelineReport


def _build_sort_key(build_number: str) -> tuple:
    # Numeric builds order numerically; anything else sorts before them.
    if build_number.isdigit():
        return (1, int(build_number), "")
    return (0, 0, build_number)


class BuildHistory:
    """
    Stores one JSON record per build number and keeps only the newest `keep`.

    Usage:
        history = BuildHistory(Path("/var/lib/webapp-pipeline"), keep=10)
        history.save(report)
        recent = history.list(limit=5)
    """

    FILE_PREFIX = "build-"

    def __init__(self, directory: Path, keep: int = 10):
        if keep < 1:
            raise ValueError("keep must be at least 1")
        self.directory = Path(directory)
        self.keep = keep
        self.logger = get_logger("BuildHistory")

    def _path(self, build_number: str) -> Path:
        InputValidator.validate_build_number(build_number)
        return self.directory / f"{self.FILE_PREFIX}{build_number}.json"

    def _build_numbers(self) -> List[str]:
        if not self.directory.exists():
            return []
        stems = (path.stem[len(self.FILE_PREFIX):] for path in self.directory.glob(f"{self.FILE_PREFIX}*.json"))
        numbers = [stem for stem in stems if InputValidator.BUILD_NUMBER_PATTERN.match(stem)]
        return sorted(numbers, key=_build_sort_key)

    def save(self, report: PipelineReport) -> Path:
        """Write the report, then prune old records."""
        path = self._path(report.build_number)
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(report.to_json())
        self.prune()
        return path

    def prune(self) -> List[str]:
        """Delete all but the newest `keep` records; return the removed build numbers."""
        numbers = self._build_numbers()
        stale = numbers[:-self.keep] if len(numbers) > self.keep else []
        for number in stale:
            self._path(number).unlink(missing_ok=True)
        if stale:
            self.logger.info("Pruned build records", removed=stale)
        return stale

    def load(self, build_number: str) -> Optional[PipelineReport]:
        path = self._path(build_number)
        if not path.exists():
            return None
        return PipelineReport.from_dict(json.loads(path.read_text()))

    def list(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Summaries of stored builds, newest first."""
        summaries = []
        for number in reversed(self._build_numbers()):
            report = self.load(number)
            if report is not None:
                summaries.append(report.get_summary())
            if limit is not None and len(summaries) >= limit:
                break
        return summaries
