"""groundwork: knowledge retrieval and conversation budgeting for LLM prompts."""

__version__ = "0.1.0"
