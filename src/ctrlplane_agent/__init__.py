"""Ctrlplane job agent: claims queued jobs and runs them on a local executor."""

__version__ = "0.1.0"
