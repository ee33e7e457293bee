from codr.orchestrator.conversation import Conversation
from codr.orchestrator.core import Orchestrator, TurnStream, parse_arguments

__all__ = ["Conversation", "Orchestrator", "TurnStream", "parse_arguments"]
