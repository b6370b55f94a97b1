"""Inspection session models and the advancement state machine."""
