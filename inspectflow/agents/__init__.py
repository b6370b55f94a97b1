"""LLM agents used as external collaborators of the workflow engine."""
