"""Agents package - intent routing, specialist agents and their tools.

The orchestrator classifies each operator instruction, then hands it to
the task, content or communication agent. Each agent runs a bounded
tool-use loop against the model, dispatching to the handlers in tools.py.
"""

from .orchestrator import Orchestrator, get_orchestrator
from .tools import TOOLS, execute_tool

__all__ = ["Orchestrator", "get_orchestrator", "TOOLS", "execute_tool"]
