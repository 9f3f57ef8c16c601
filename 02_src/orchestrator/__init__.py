"""Multi-agent task orchestration core."""

from .app import Application, IApplication
from .client import OrchestratorClient
from .config import Settings
from .orchestrator import Orchestrator

__all__ = [
    "Application",
    "IApplication",
    "Orchestrator",
    "OrchestratorClient",
    "Settings",
]

__version__ = "0.1.0"
