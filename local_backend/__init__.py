"""Tooling for the Artemis local backend docker-compose stack."""

__version__ = "1.0.0"
