"""Methodology definition and the pure gating and scoring functions."""
