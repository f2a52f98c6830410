"""Arrangement engine services: pure core plus the async collaborator-facing service."""
