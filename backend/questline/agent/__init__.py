from questline.agent.decision_pipeline import DecisionPipeline
from questline.agent.fallback_strategies import FallbackStrategies
from questline.agent.orchestrator import AIOrchestrator
from questline.agent.provider import ReasoningProvider
from questline.agent.task_queue import TaskStore

__all__ = [
    "AIOrchestrator",
    "DecisionPipeline",
    "FallbackStrategies",
    "ReasoningProvider",
    "TaskStore",
]
