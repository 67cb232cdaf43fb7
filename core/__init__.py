"""Shared infrastructure for the PRS backup tooling."""
