"""Test helper utilities for trainee notification tests."""

from .fakes import (
    NOW,
    VERSION,
    FakeSMTPClient,
    InMemoryAccountDirectory,
    fixed_clock,
    make_app_config,
    make_env_config,
    make_renderer,
    template_sources,
)

__all__ = [
    "NOW",
    "VERSION",
    "FakeSMTPClient",
    "InMemoryAccountDirectory",
    "fixed_clock",
    "make_app_config",
    "make_env_config",
    "make_renderer",
    "template_sources",
]
