"""
Conductor - movement execution and transition engine
=====================================================

A piece is a graph of named movements. Each movement hands an instruction
to a persona through an Agent Invoker, and its rules decide which movement
runs next, until one targets ``COMPLETE`` or ``ABORT``.

## Quick Start Pattern

```python
from conductor import PieceConfigRaw, PieceEngine, normalize_piece_config

config = normalize_piece_config(PieceConfigRaw.model_validate(raw_dict))
engine = PieceEngine(config, cwd="/work", task="Add a health endpoint",
                     agent_invoker=my_invoker, judge_invoker=my_judge)
final_state = await engine.run()
```
"""

from conductor.config import (
    PieceConfigRaw,
    PieceEngineOptions,
    normalize_piece_config,
)
from conductor.errors import (
    ConductorError,
    ConfigError,
    ExecutionError,
    RuleResolutionError,
    SessionError,
)
from conductor.events import EventBus
from conductor.piece import IterationOutcome, PieceEngine
from conductor.providers import AgentJudge, ScriptedAgentInvoker, ScriptedReply
from conductor.types import (
    ABORT,
    COMPLETE,
    AgentCallOptions,
    AgentInvoker,
    AgentResponse,
    JudgeCondition,
    JudgeInvoker,
    PieceConfig,
    PieceState,
    RuleMatch,
)

__version__ = "0.3.0"

__all__ = [
    "PieceEngine",
    "IterationOutcome",
    "PieceEngineOptions",
    "PieceConfigRaw",
    "normalize_piece_config",
    "PieceConfig",
    "PieceState",
    "AgentResponse",
    "RuleMatch",
    "AgentCallOptions",
    "AgentInvoker",
    "JudgeCondition",
    "JudgeInvoker",
    "AgentJudge",
    "ScriptedAgentInvoker",
    "ScriptedReply",
    "EventBus",
    "COMPLETE",
    "ABORT",
    "ConductorError",
    "ConfigError",
    "ExecutionError",
    "RuleResolutionError",
    "SessionError",
]
