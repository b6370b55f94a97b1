"""Persistence backends for sessions and evidence."""
