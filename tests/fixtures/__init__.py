"""Shared pytest fixtures and helpers for provisioning tests."""

from .core import *  # noqa: F401,F403
