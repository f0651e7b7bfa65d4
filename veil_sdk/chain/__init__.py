"""Multi-account note chains."""

from .orchestrator import ChainReport, ConsumeMode, HopCheckpoint, HopState, NoteChainOrchestrator  # noqa: F401
