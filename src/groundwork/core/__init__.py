"""Core engines: knowledge relevance ranking and conversation context budgeting."""
