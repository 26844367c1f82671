from .service import KnowledgeService, format_context

__all__ = ["KnowledgeService", "format_context"]
