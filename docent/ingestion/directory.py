"""
Directory Ingestion
===================

Walks a source folder and turns each supported file into knowledge items.

Pipeline per file:
1. Detect language from the extension
2. Optionally strip comments and collapse runs of blank lines
3. Short files become a single ``file`` item with content and embedding
4. Long files become a content-less ``file`` parent plus line-based
   ``document`` chunks with overlap, each embedded

Per-file failures are recorded in the result and do not stop the run.

Usage:
    ingestor = DirectoryIngestor(knowledge_repo, embedder)
    result = await ingestor.ingest("/path/to/project")
    print(result.files_processed, result.chunks_created)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.repositories import KnowledgeRepository
from ..core.schemas import KnowledgeItemCreate, KnowledgeMetadata, KnowledgeType
from ..llms.base import Embedder
from ..observability import OperationLogger

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

SUPPORTED_EXTENSIONS = [
    ".js", ".jsx", ".ts", ".tsx",
    ".py", ".java", ".cpp", ".c", ".h", ".hpp",
    ".cs", ".php", ".rb", ".go", ".rs",
    ".swift", ".kt", ".scala", ".sh", ".bash",
    ".html", ".css", ".scss", ".sass", ".less",
    ".json", ".yaml", ".yml", ".xml",
    ".sql", ".md", ".txt",
]

EXCLUDED_SEGMENTS = [
    "node_modules", ".git", "dist", "build", "coverage",
    ".next", ".nuxt", "out", "target", "bin", "obj",
    "__pycache__", ".pytest_cache", ".venv", "venv",
    "vendor", "bower_components", ".idea", ".vscode",
]

LANGUAGE_MAP = {
    ".js": "JavaScript", ".jsx": "JavaScript React",
    ".ts": "TypeScript", ".tsx": "TypeScript React",
    ".py": "Python", ".java": "Java",
    ".cpp": "C++", ".c": "C", ".h": "C/C++ Header",
    ".cs": "C#", ".php": "PHP", ".rb": "Ruby",
    ".go": "Go", ".rs": "Rust", ".swift": "Swift",
    ".kt": "Kotlin", ".scala": "Scala",
    ".sh": "Shell", ".bash": "Bash",
    ".html": "HTML", ".css": "CSS",
    ".json": "JSON", ".yaml": "YAML", ".yml": "YAML",
    ".sql": "SQL", ".md": "Markdown",
}

SLASH_LINE_LANGUAGES = ("JavaScript", "TypeScript", "Java", "C++", "C", "C#", "Go", "Rust", "Swift", "Kotlin", "Scala", "PHP")
HASH_LINE_LANGUAGES = ("Python", "Shell", "Bash", "Ruby")
BLOCK_COMMENT_LANGUAGES = SLASH_LINE_LANGUAGES + ("CSS",)

_SLASH_LINE = re.compile(r"//.*$", re.MULTILINE)
_HASH_LINE = re.compile(r"#.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_TRIPLE_DOUBLE = re.compile(r'"""[\s\S]*?"""')
_TRIPLE_SINGLE = re.compile(r"'''[\s\S]*?'''")
_BLANK_RUN = re.compile(r"\n\s*\n\s*\n")


@dataclass
class IngestConfig:
    """Configuration for directory ingestion."""

    chunk_threshold: int = 2000
    chunk_size: int = 1000
    chunk_overlap: int = 200
    remove_comments: bool = True
    created_by: str = "embedding-script"
    extensions: list[str] = field(default_factory=lambda: list(SUPPORTED_EXTENSIONS))
    excluded_segments: list[str] = field(default_factory=lambda: list(EXCLUDED_SEGMENTS))
    include_folders: list[str] | None = None
    exclude_folders: list[str] = field(default_factory=list)


@dataclass
class IngestResult:
    """Result of an ingestion run."""

    files_processed: int = 0
    files_skipped: int = 0
    chunks_created: int = 0
    total_size: int = 0
    language_distribution: dict[str, int] = field(default_factory=dict)
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items()}


@dataclass
class Chunk:
    index: int
    content: str
    start_line: int
    end_line: int
    size: int


# =============================================================================
# TEXT PROCESSING
# =============================================================================


def detect_language(path: str | Path) -> str:
    return LANGUAGE_MAP.get(Path(path).suffix.lower(), "Unknown")


def _matches_any(language: str, names: tuple[str, ...]) -> bool:
    return any(name in language for name in names)


def clean_content(content: str, language: str, remove_comments: bool = True) -> str:
    """Strip comments for the detected language and collapse blank-line runs."""
    if not remove_comments:
        return content

    cleaned = content
    if _matches_any(language, SLASH_LINE_LANGUAGES):
        cleaned = _SLASH_LINE.sub("", cleaned)
    if _matches_any(language, HASH_LINE_LANGUAGES):
        cleaned = _HASH_LINE.sub("", cleaned)
    if _matches_any(language, BLOCK_COMMENT_LANGUAGES):
        cleaned = _BLOCK_COMMENT.sub("", cleaned)
    if "Python" in language:
        cleaned = _TRIPLE_DOUBLE.sub("", cleaned)
        cleaned = _TRIPLE_SINGLE.sub("", cleaned)

    cleaned = _BLANK_RUN.sub("\n\n", cleaned)
    return cleaned.strip()


def create_chunks(content: str, chunk_size: int = 1000, overlap: int = 200) -> list[Chunk]:
    """
    Split ``content`` on line boundaries into chunks of at most ``chunk_size``
    characters (a single longer line becomes its own chunk).

    Each new chunk starts with as many trailing lines of the previous chunk
    as fit in ``overlap`` characters. Line numbers are zero-based.
    """
    lines = content.split("\n")
    chunks: list[Chunk] = []
    current: list[str] = []
    current_size = 0
    start_line = 0

    for i, line in enumerate(lines):
        line_size = len(line) + 1

        if current_size + line_size > chunk_size and current:
            chunks.append(Chunk(len(chunks), "\n".join(current), start_line, i - 1, current_size))

            overlap_lines: list[str] = []
            overlap_size = 0
            for previous in reversed(current):
                if overlap_size + len(previous) + 1 > overlap:
                    break
                overlap_lines.insert(0, previous)
                overlap_size += len(previous) + 1

            current = overlap_lines
            current_size = overlap_size
            start_line = i - len(overlap_lines)

        current.append(line)
        current_size += line_size

    if current:
        chunks.append(Chunk(len(chunks), "\n".join(current), start_line, len(lines) - 1, current_size))

    return chunks


# =============================================================================
# INGESTOR
# =============================================================================


class DirectoryIngestor:
    """Turns a source tree into knowledge items."""

    def __init__(self, repository: KnowledgeRepository, embedder: Embedder, config: IngestConfig | None = None):
        self.repository = repository
        self.embedder = embedder
        self.config = config or IngestConfig()

    def _segment_excluded(self, segments: list[str]) -> bool:
        blocked = set(self.config.excluded_segments) | set(self.config.exclude_folders)
        return any(segment in blocked for segment in segments)

    def _folder_included(self, segments: list[str]) -> bool:
        if not self.config.include_folders:
            return True
        wanted = set(self.config.include_folders)
        return any(segment in wanted for segment in segments)

    def scan(self, root: str | Path) -> list[Path]:
        """Supported files under ``root``, in a stable order."""
        root = Path(root)
        extensions = {ext.lower() for ext in self.config.extensions}
        files = []

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root)
            # Prune in place
            dirnames[:] = sorted(d for d in dirnames if not self._segment_excluded([*rel_dir.parts, d]))
            for name in sorted(filenames):
                rel = rel_dir / name
                if Path(name).suffix.lower() not in extensions:
                    continue
                if self._segment_excluded(list(rel.parts)) or not self._folder_included(list(rel.parts)):
                    continue
                files.append(root / rel)

        return files

    async def ingest(self, root: str | Path) -> IngestResult:
        root = Path(root)
        result = IngestResult()
        if not root.is_dir():
            result.errors.append({"file": str(root), "error": "Not a directory"})
            return result

        with OperationLogger(logger, "ingest_directory", root=str(root)):
            files = self.scan(root)
            logger.info(f"Found {len(files)} files to ingest under {root}")
            for path in files:
                try:
                    await self._ingest_file(root, path, result)
                except Exception as e:
                    logger.warning(f"Failed to ingest {path}: {e}")
                    result.errors.append({"file": str(path), "error": str(e)})
                    result.files_skipped += 1

        logger.info(
            f"Ingestion finished: {result.files_processed} processed, "
            f"{result.files_skipped} skipped, {result.chunks_created} items created"
        )
        return result

    async def _ingest_file(self, root: Path, path: Path, result: IngestResult) -> None:
        rel_path = path.relative_to(root).as_posix()
        language = detect_language(path)
        result.language_distribution[language] = result.language_distribution.get(language, 0) + 1

        content = path.read_text(encoding="utf-8")
        result.total_size += len(content)

        cleaned = clean_content(content, language, self.config.remove_comments)
        if not cleaned:
            logger.info(f"Skipped (empty after cleaning): {rel_path}")
            result.files_skipped += 1
            return

        if len(cleaned) > self.config.chunk_threshold:
            await self._store_chunked(path.name, rel_path, language, content, cleaned, result)
        else:
            await self._store_single(path.name, rel_path, language, content, cleaned, result)
        result.files_processed += 1

    async def _store_single(self, name, rel_path, language, content, cleaned, result: IngestResult) -> None:
        embedding = await self.embedder.embed(cleaned)
        metadata = KnowledgeMetadata(
            file_path=rel_path,
            language=language,
            file_size=len(content),
            is_chunked=False,
            original_size=len(content),
            cleaned_size=len(cleaned),
        )
        await self.repository.create(
            KnowledgeItemCreate(
                title=name,
                description=f"Source file: {rel_path}",
                type=KnowledgeType.FILE,
                content=cleaned,
                metadata=metadata.to_storage(),
                created_by=self.config.created_by,
            ),
            embedding=embedding,
        )
        result.chunks_created += 1

    async def _store_chunked(self, name, rel_path, language, content, cleaned, result: IngestResult) -> None:
        chunks = create_chunks(cleaned, self.config.chunk_size, self.config.chunk_overlap)
        logger.info(f"Processing (chunked): {rel_path} - {len(chunks)} chunks")

        # All chunks are embedded before the parent row exists
        embeddings = [await self.embedder.embed(chunk.content) for chunk in chunks]

        parent = await self.repository.create(
            KnowledgeItemCreate(
                title=name,
                description=f"Source file: {rel_path}",
                type=KnowledgeType.FILE,
                content=None,
                metadata=KnowledgeMetadata(
                    file_path=rel_path,
                    language=language,
                    file_size=len(content),
                    is_chunked=True,
                    original_size=len(content),
                    cleaned_size=len(cleaned),
                ).to_storage(),
                created_by=self.config.created_by,
            )
        )

        for chunk, embedding in zip(chunks, embeddings):
            metadata = KnowledgeMetadata(
                file_path=rel_path,
                language=language,
                chunk_index=chunk.index,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                chunk_size=chunk.size,
                parent_uuid=parent.id,
            )
            await self.repository.create(
                KnowledgeItemCreate(
                    title=f"{name} (Chunk {chunk.index + 1})",
                    description=f"Lines {chunk.start_line + 1}-{chunk.end_line + 1}",
                    type=KnowledgeType.DOCUMENT,
                    content=chunk.content,
                    metadata=metadata.to_storage(),
                    parent_id=parent.id,
                    created_by=self.config.created_by,
                ),
                embedding=embedding,
            )
            result.chunks_created += 1
