"""
Conversation agent: intent oracle, plan engine, state machine, image dispatcher
"""

from .oracle import IntentOracle
from .plan_engine import PlanLifecycleEngine
from .conversation import ConversationStateMachine
from .dispatcher import BackgroundDispatcher

__all__ = [
    "IntentOracle",
    "PlanLifecycleEngine",
    "ConversationStateMachine",
    "BackgroundDispatcher",
]
