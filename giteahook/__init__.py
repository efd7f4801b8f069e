"""Gitea/Gogs push webhook receiver that runs configured commands."""

__version__ = "0.1.0"
