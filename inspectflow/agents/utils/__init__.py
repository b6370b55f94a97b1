"""Shared agent utilities: model selection and prompt loading."""
