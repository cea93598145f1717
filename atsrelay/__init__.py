"""Candidate identity index and upload orchestration for the Ashby relay."""

__version__ = "0.1.0"
