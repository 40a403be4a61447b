"""Utility helpers shared across billing services."""
