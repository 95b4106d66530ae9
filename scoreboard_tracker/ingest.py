"""Batch ingestion of scoreboard log files into the store."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from scoreboard_tracker.config.config import TrackerConfig
from scoreboard_tracker.errors import BadFilenameError, PersistenceError
from scoreboard_tracker.parser import ScoreboardParser
from scoreboard_tracker.repository import ScoreRepository

logger = logging.getLogger(__name__)


@dataclass
class IngestionProgress:
    processed: int
    total: int
    message: str


@dataclass
class IngestionSummary:
    ingested: int = 0
    errors: int = 0
    total: int = 0
    persistence_failures: int = 0


class FileSource(Protocol):
    """Enumerates named text blobs and reads them on demand."""

    def list_names(self) -> List[str]:
        ...

    def read_text(self, name: str) -> str:
        ...


class DirectorySource:
    """Log files with the given extension inside one directory."""

    def __init__(self, directory: str, extension: str = ".lua"):
        self.directory = Path(directory)
        self.extension = extension

    @property
    def handle(self) -> str:
        return str(self.directory.resolve())

    def list_names(self) -> List[str]:
        return sorted(
            entry.name for entry in self.directory.iterdir()
            if entry.is_file() and entry.name.endswith(self.extension)
        )

    def read_text(self, name: str) -> str:
        return (self.directory / name).read_text(encoding="utf-8")


class FileListSource:
    """An explicit list of log files, possibly from different directories."""

    def __init__(self, paths: Iterable[str], extension: str = ".lua"):
        # Only the first path per filename is kept
        self.paths: Dict[str, Path] = {}
        for path in map(Path, paths):
            if not path.name.endswith(extension):
                continue
            if path.name in self.paths:
                logger.warning(f"Skipping {path}: same filename as {self.paths[path.name]}")
                continue
            self.paths[path.name] = path

    def list_names(self) -> List[str]:
        return sorted(self.paths)

    def read_text(self, name: str) -> str:
        return self.paths[name].read_text(encoding="utf-8")


ProgressCallback = Callable[[IngestionProgress], None]


class IngestionCoordinator:
    """Coordinate parsing and batched, failure-isolated insertion of log files."""

    def __init__(
        self,
        repository: ScoreRepository,
        *,
        parser: Optional[ScoreboardParser] = None,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.repository = repository
        self.config = config or repository.config
        self.parser = parser or ScoreboardParser(self.config)

    def ingest(self, source: FileSource,
               progress_callback: Optional[ProgressCallback] = None) -> IngestionSummary:
        """Ingest every new file from ``source``.

        Args:
            source: Where to find log files
            progress_callback: Receives an IngestionProgress after every batch

        Returns:
            Counts of ingested and failed files
        """
        steps = self.iter_ingest(source)
        while True:
            try:
                progress = next(steps)
            except StopIteration as stop:
                return stop.value
            if progress_callback:
                progress_callback(progress)
            else:
                logger.info(progress.message)

    def iter_ingest(self, source: FileSource) -> Generator[IngestionProgress, None, IngestionSummary]:
        """Ingest new files, yielding progress after each committed batch.

        Everything is committed and persisted before each yield, so stopping
        the generator at a yield loses nothing. Already recorded filenames are
        skipped, which makes repeated runs idempotent.
        """
        names = sorted(source.list_names())
        existing = self.repository.get_existing_filenames()
        new_names = [name for name in names if name not in existing]
        summary = IngestionSummary(total=len(names))

        if not new_names:
            yield IngestionProgress(0, 0, "All files already ingested.")
            return summary

        logger.info(f"Ingesting {len(new_names)} new files ({len(names) - len(new_names)} already recorded)")
        batch_size = max(1, self.config.batch_size)
        session = self.repository.store.session()
        try:
            for position, name in enumerate(new_names, start=1):
                self._ingest_file(session, source, name, summary)
                if position % batch_size == 0:
                    session.commit()
                    logger.info(f"Committed batch at {position}/{len(new_names)} files")
                    self._checkpoint(summary)
                    yield IngestionProgress(position, len(new_names),
                                            f"{position}/{len(new_names)} processed...")
            if summary.ingested:
                self.repository.backfill_unknown_player_names(session)
            session.commit()
        finally:
            session.close()

        self._checkpoint(summary)
        yield IngestionProgress(len(new_names), len(new_names),
                                f"Done: {summary.ingested} ingested, {summary.errors} errors.")
        return summary

    def _ingest_file(self, session, source: FileSource, name: str, summary: IngestionSummary) -> None:
        try:
            content = source.read_text(name)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading file {name}: {e}")
            summary.errors += 1
            return

        try:
            game = self.parser.parse_content(name, content)
        except BadFilenameError as e:
            logger.error(str(e))
            summary.errors += 1
            return

        try:
            self.repository.insert_game(game, session=session)
        except SQLAlchemyError as e:
            logger.error(f"Error inserting {name}: {e}")
            summary.errors += 1
            return
        summary.ingested += 1

    def _checkpoint(self, summary: IngestionSummary) -> None:
        try:
            self.repository.store.save()
        except PersistenceError as e:
            # Data stays in memory; the next successful save makes it durable
            logger.error(str(e))
            summary.persistence_failures += 1
