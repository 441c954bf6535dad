"""Cluster lifecycle controller: creation wizard and edit-mode reconciliation."""

__version__ = "0.1.0"
