"""Hierarchical parking pricing service."""
