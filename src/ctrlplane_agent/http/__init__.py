"""Shared HTTP plumbing."""

from ctrlplane_agent.http.session import HttpResult, JsonSession

__all__ = ["HttpResult", "JsonSession"]
