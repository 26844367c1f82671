from .cache import PersonalityCache
from .service import PersonalityService, build_generic_prompt, build_knowledge_prompt, extract_domain

__all__ = [
    "PersonalityCache",
    "PersonalityService",
    "build_generic_prompt",
    "build_knowledge_prompt",
    "extract_domain",
]
