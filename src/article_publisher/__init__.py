"""Multi-agent article publishing pipeline: research, draft, fact-check, edit, critique."""

__version__ = "0.1.0"
