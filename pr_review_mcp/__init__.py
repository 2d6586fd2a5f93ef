"""Gate and orchestrate multi-agent automated review of pull requests."""

from .aggregator import ReviewAggregator
from .orchestrator import AgentOrchestrator
from .parser import ResponseParser
from .pipeline import ReviewPipeline
from .skip_policy import SkipPolicyEngine

__all__ = [
    "AgentOrchestrator",
    "ResponseParser",
    "ReviewAggregator",
    "ReviewPipeline",
    "SkipPolicyEngine",
]
