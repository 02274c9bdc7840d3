"""CaddieNet agents: classification, execution, orchestration."""

from caddienet.agents.classifier import CommandClassifier
from caddienet.agents.executor import CommandExecutor
from caddienet.agents.orchestrator import InteractionOrchestrator, OrchestratorState

__all__ = [
    "CommandClassifier",
    "CommandExecutor",
    "InteractionOrchestrator",
    "OrchestratorState",
]
