from .directory import (
    DirectoryIngestor,
    IngestConfig,
    IngestResult,
    clean_content,
    create_chunks,
    detect_language,
)

__all__ = [
    "DirectoryIngestor",
    "IngestConfig",
    "IngestResult",
    "clean_content",
    "create_chunks",
    "detect_language",
]
