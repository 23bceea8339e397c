"""LLM-backed clinical agents."""
