# src/__init__.py — v1
"""thegrid: event-driven pipeline and approval workflow core."""
