"""Recursive recovery of account candidates from existing launcher scripts."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from pwaccounts.batch.codec import parse_script
from pwaccounts.batch.encoding import is_corrupted, read_text_with_fallback, repair
from pwaccounts.contracts import SCRIPT_EXTENSION
from pwaccounts.supervisor.models import ScanCandidate

logger = logging.getLogger("pwaccounts.batch.scanner")

MAX_SCAN_DEPTH = 5
MAX_SCAN_CANDIDATES = 1000


class DirectoryScanner:
    """Best-effort, bounded walk over a directory tree collecting script candidates."""

    def __init__(
        self,
        *,
        max_depth: int = MAX_SCAN_DEPTH,
        max_candidates: int = MAX_SCAN_CANDIDATES,
    ) -> None:
        self.max_depth = max_depth
        self.max_candidates = max_candidates

    def scan(self, root_dir: str | os.PathLike) -> list[ScanCandidate]:
        """Return every complete candidate found under root_dir."""
        candidates: list[ScanCandidate] = []
        self._scan_directory(Path(root_dir), candidates, 0)
        logger.info("Scan of %s found %d candidate(s)", root_dir, len(candidates))
        return candidates

    async def scan_async(self, root_dir: str | os.PathLike) -> list[ScanCandidate]:
        """Run scan in a worker thread so the event loop keeps polling."""
        return await asyncio.to_thread(self.scan, root_dir)

    def _limit_reached(self, candidates: list[ScanCandidate]) -> bool:
        return len(candidates) >= self.max_candidates

    def _scan_directory(self, directory: Path, candidates: list[ScanCandidate], depth: int) -> None:
        if depth >= self.max_depth:
            logger.warning("Reached maximum scan depth (%d) at: %s", self.max_depth, directory)
            return
        if self._limit_reached(candidates):
            logger.warning(
                "Reached maximum candidate limit (%d), stopping scan", self.max_candidates
            )
            return

        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            logger.warning("Cannot read directory %s: %s", directory, exc)
            return

        for entry in entries:
            if self._limit_reached(candidates):
                break
            entry_path = Path(entry.path)
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file()
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", entry_path, exc)
                continue

            if is_dir:
                self._scan_directory(entry_path, candidates, depth + 1)
            elif is_file and entry.name.lower().endswith(SCRIPT_EXTENSION):
                try:
                    candidate = self.parse_file(entry_path)
                except Exception as exc:
                    logger.warning("Error processing script %s: %s", entry_path, exc)
                    continue
                if candidate is not None:
                    candidates.append(candidate)

    def parse_file(self, path: Path) -> ScanCandidate | None:
        """Parse one script; None when login or password could not be recovered."""
        text = read_text_with_fallback(path)
        partial = parse_script(text)
        if not partial.is_complete():
            logger.debug("Discarding incomplete script candidate: %s", path)
            return None

        fields = partial.model_dump()
        for name in ("character_name", "description", "owner"):
            value = fields.get(name)
            if value and is_corrupted(value):
                fields[name] = repair(value)
        return ScanCandidate(**fields, source_path=str(path))
