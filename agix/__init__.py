"""Agentfile manifests, package sources and terminal helpers for AI CLI tools."""

__version__ = "0.2.0"