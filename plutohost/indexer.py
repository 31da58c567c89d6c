"""
Notebook indexer for plutohost.

Walks the notebooks/ directory of every synchronized working copy, keeps the
files that carry the Pluto notebook header, and publishes them into a flat
index directory under collision-free names. The index is rebuilt from
scratch on every run.
"""
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from plutohost.errors import IndexCollisionError, IndexPublishError, IndexResetError
from plutohost.repos_config import RepositoryRef


logger = logging.getLogger(__name__)

NOTEBOOKS_SUBDIR = "notebooks"
NOTEBOOK_EXTENSION = ".jl"
PLUTO_MARKER = "### A Pluto.jl notebook ###"
SNIFF_BYTES = 8 * 1024
PUBLISH_MODES = ("symlink", "copy")


@dataclass(frozen=True)
class CandidateDocument:
    """A notebook-shaped file found in a working copy."""
    path: Path
    ref: RepositoryRef

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def indexed_name(self) -> str:
        return self.ref.indexed_name(self.file_name)


@dataclass(frozen=True)
class IndexedDocument:
    """A validated notebook published into the index."""
    source_ref: RepositoryRef
    original_name: str
    indexed_name: str


@dataclass(frozen=True)
class ValidationSkip:
    """A candidate left out of the index because it failed validation."""
    path: Path
    ref: RepositoryRef
    reason: str


@dataclass
class IndexReport:
    """Outcome of one index rebuild."""
    indexed: List[IndexedDocument] = field(default_factory=list)
    skipped: List[ValidationSkip] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.indexed)


class DocumentIndexer:
    """Builds the flat notebook index served by PlutoSliderServer."""

    def __init__(
        self,
        index_dir: Path,
        extension: str = NOTEBOOK_EXTENSION,
        marker: str = PLUTO_MARKER,
        sniff_bytes: int = SNIFF_BYTES,
        publish_mode: str = "symlink"
    ):
        """
        Initialize indexer.

        Args:
            index_dir: Directory that receives the published notebooks
            extension: File extension of candidate notebooks
            marker: Literal string a notebook must contain near its top
            sniff_bytes: How many leading bytes to search for the marker
            publish_mode: 'symlink' (default) or 'copy'
        """
        if publish_mode not in PUBLISH_MODES:
            raise ValueError(f"publish_mode must be one of {PUBLISH_MODES}, got {publish_mode!r}")

        self.index_dir = Path(index_dir)
        self.extension = extension
        self.marker = marker.encode('utf-8')
        self.sniff_bytes = max(sniff_bytes, len(self.marker))
        self.publish_mode = publish_mode

    def reset(self):
        """
        Remove everything from the index directory, creating it if needed.

        Raises:
            IndexResetError: If an entry cannot be removed
        """
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            for entry in self.index_dir.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        except OSError as e:
            raise IndexResetError(f"Cannot clear index directory {self.index_dir}: {e}") from e

    def find_candidates(self, ref: RepositoryRef, working_copy: Path) -> List[CandidateDocument]:
        """
        List candidate notebooks directly under a working copy's notebooks/.

        A missing notebooks/ directory yields no candidates.
        """
        notebooks_dir = Path(working_copy) / NOTEBOOKS_SUBDIR
        if notebooks_dir.is_symlink():
            logger.warning("Ignoring symlinked %s/ directory in %s", NOTEBOOKS_SUBDIR, ref.full_name)
            return []
        if not notebooks_dir.is_dir():
            logger.debug("No %s/ directory in %s", NOTEBOOKS_SUBDIR, ref.full_name)
            return []

        root = Path(working_copy).resolve()
        candidates = []
        for path in sorted(notebooks_dir.glob(f"*{self.extension}")):
            # Regular files only, like find -type f
            if path.is_symlink() or not path.is_file():
                continue
            resolved = path.resolve()
            try:
                resolved.relative_to(root)
            except ValueError:
                logger.warning("Ignoring %s: resolves outside %s", path, ref.full_name)
                continue
            candidates.append(CandidateDocument(path=resolved, ref=ref))
        return candidates

    def validate(self, candidate: CandidateDocument) -> Optional[str]:
        """
        Check a candidate for the notebook marker.

        Returns:
            None if valid, otherwise the reason it was rejected
        """
        try:
            with open(candidate.path, 'rb') as f:
                head = f.read(self.sniff_bytes)
        except OSError as e:
            return f"unreadable: {e}"

        if self.marker not in head:
            return "missing Pluto notebook header"
        return None

    def publish(self, candidate: CandidateDocument) -> IndexedDocument:
        """Place one validated notebook into the index."""
        target = self.index_dir / candidate.indexed_name
        if self.publish_mode == "copy":
            shutil.copyfile(candidate.path, target)
        else:
            os.symlink(candidate.path, target)

        return IndexedDocument(
            source_ref=candidate.ref,
            original_name=candidate.file_name,
            indexed_name=candidate.indexed_name
        )

    def build(self, working_copies: Iterable[Tuple[RepositoryRef, Path]]) -> IndexReport:
        """
        Rebuild the index from the given working copies.

        Args:
            working_copies: (ref, working copy path) pairs

        Returns:
            IndexReport with published and skipped notebooks

        Raises:
            IndexResetError: If the index directory cannot be cleared
            IndexCollisionError: If two notebooks map to the same name
            IndexPublishError: If a notebook cannot be linked or copied
        """
        self.reset()
        report = IndexReport()

        valid: Dict[str, CandidateDocument] = {}
        for ref, working_copy in working_copies:
            for candidate in self.find_candidates(ref, working_copy):
                reason = self.validate(candidate)
                if reason:
                    skip = ValidationSkip(path=candidate.path, ref=ref, reason=reason)
                    logger.warning(
                        "Skipping non-Pluto notebook: %s/%s/%s (%s)",
                        ref.working_copy_name(), NOTEBOOKS_SUBDIR, candidate.file_name, reason
                    )
                    report.skipped.append(skip)
                    continue

                name = candidate.indexed_name
                if name in valid:
                    raise IndexCollisionError(
                        f"Indexed name {name} claimed by both {valid[name].path} and {candidate.path}"
                    )
                valid[name] = candidate

        for name in sorted(valid):
            try:
                document = self.publish(valid[name])
            except OSError as e:
                raise IndexPublishError(f"Cannot publish {name} into {self.index_dir}: {e}") from e
            logger.info("Indexed notebook: %s", name)
            report.indexed.append(document)

        return report
