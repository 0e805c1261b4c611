"""Upload → processing → result state machine and its progress ticker."""

from .orchestrator import FlowSnapshot, FlowState, PersonalizationOrchestrator
from .progress import ProgressTicker

__all__ = ["FlowSnapshot", "FlowState", "PersonalizationOrchestrator", "ProgressTicker"]
