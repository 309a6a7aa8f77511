"""Shared models, utilities and database access for MindMesh services."""
