"""Task orchestration core for the novel-promotion pipeline."""

__version__ = "0.1.0"
