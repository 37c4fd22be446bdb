from .base import BaseAgent
from .registry import AgentRegistry, UnknownAgentError
from .simulated import SimulatedAgent, build_simulated_registry
from .coordinator import CoordinatorAgent

__all__ = [
    "BaseAgent",
    "AgentRegistry",
    "UnknownAgentError",
    "SimulatedAgent",
    "build_simulated_registry",
    "CoordinatorAgent",
]
