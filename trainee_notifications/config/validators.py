"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """Check raw configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch", {})
    if isinstance(dispatch, dict):
        email_enabled = dispatch.get("email_enabled", False)
        in_app_enabled = dispatch.get("in_app_enabled", False)
        whitelist = dispatch.get("whitelist") or []

        if not email_enabled and not whitelist:
            warning_messages.append(
                "Email dispatch is disabled and the whitelist is empty; "
                "emails will only be logged"
            )
        if not in_app_enabled and not whitelist:
            warning_messages.append(
                "In-app dispatch is disabled and the whitelist is empty; "
                "in-app messages will only be logged"
            )
        if isinstance(whitelist, list) and len(whitelist) != len(set(whitelist)):
            warning_messages.append("Duplicate subject ids in dispatch.whitelist")

    schedules = config_dict.get("schedules", {})
    if isinstance(schedules, dict):
        grace = schedules.get("overdue_grace_seconds", 300)
        if isinstance(grace, int) and grace < 60:
            warning_messages.append(
                f"Short overdue_grace_seconds ({grace}) may race with jobs that are "
                "about to fire"
            )

    outbox = config_dict.get("outbox", {})
    if isinstance(outbox, dict):
        batch_size = outbox.get("batch_size", 10)
        if isinstance(batch_size, int) and 0 < batch_size < 10:
            warning_messages.append(
                f"outbox.batch_size of {batch_size} sends more channel requests than needed"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
