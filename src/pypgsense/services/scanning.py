import glob
import os
from collections.abc import Iterator
from pathlib import Path

from loguru import logger

from pypgsense.core.models import Document, ScanResult, SqlCandidateGroup, StatementSpan
from pypgsense.core.ports import IChunker


class ScanService:
    """Walks files and reports the SQL statements and embedded SQL they contain."""

    def __init__(self, chunkers: list[IChunker]) -> None:
        self.chunkers = chunkers

    def _chunker_for(self, path: Path) -> IChunker | None:
        suffix = path.suffix.lower()
        for chunker in self.chunkers:
            if suffix in chunker.supported_extensions:
                return chunker
        return None

    def _collect_files(self, target_path: str) -> list[Path]:
        if os.path.isdir(target_path):
            files: list[Path] = []
            base_dir = Path(target_path)
            for chunker in self.chunkers:
                for ext in chunker.supported_extensions:
                    files.extend(base_dir.rglob(f"*{ext}"))
            return sorted(files)
        return sorted(Path(p) for p in glob.glob(target_path, recursive=True))

    def scan_path(self, target_path: str) -> Iterator[ScanResult]:
        """Yields one result per supported file below a directory or matching a glob."""
        for filepath in self._collect_files(target_path):
            if not filepath.is_file():
                continue

            chunker = self._chunker_for(filepath)
            if chunker is None:
                logger.debug("Skipping unsupported file {}", filepath)
                continue

            with open(filepath, encoding="utf-8") as f:
                content = f.read()

            doc = Document(uri=str(filepath), content=content, language=filepath.suffix.lstrip("."))
            result = ScanResult(path=str(filepath), content=content)
            for item in chunker.process(doc):
                if isinstance(item, StatementSpan):
                    result.statements.append(item)
                elif isinstance(item, SqlCandidateGroup):
                    result.candidates.append(item)
            yield result

    def print_results(self, results: list[ScanResult]) -> None:
        """Formats and logs scan results."""
        found = [r for r in results if r.statements or r.candidates]
        if not found:
            logger.info("No SQL found")
            return

        for res in found:
            for statement in res.statements:
                snippet = statement.content[:100].replace("\n", " ")
                line = res.line_of(statement.content_start)
                logger.info("{}:{} [statement] {}", res.path, line, snippet)
            for group in res.candidates:
                snippet = group.content[:100].replace("\n", " ")
                line = res.line_of(group.start_offset)
                logger.info("{}:{} [embedded] {}", res.path, line, snippet)

        total = sum(len(r.statements) + len(r.candidates) for r in found)
        logger.info("Found {} SQL items in {} files", total, len(found))
