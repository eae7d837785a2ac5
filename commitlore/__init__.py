"""
commitlore - turn git history into stories

Provider core: pick, validate and call the text-generation backend that
writes the content, without blocking the terminal UI.

Quick Start:
    pip install -e .
    commitlore providers list
    commitlore generate "Summarize this change"
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
