from .streaming import StreamPhase, TurnStream
from .turns import PreparedTurn, TurnOrchestrator, compose_system_prompt

__all__ = [
    "StreamPhase",
    "TurnStream",
    "PreparedTurn",
    "TurnOrchestrator",
    "compose_system_prompt",
]
