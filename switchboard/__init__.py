"""switchboard - one chat interface over several LLM backends."""

__version__ = "0.1.0"
