"""Decides whether a message is really dispatched or only logged."""

from typing import Iterable

from trainee_notifications.domain.notification_types import MessageType


class DispatchPolicy:
    """Per-channel dispatch switch with a whitelist override.

    Whitelisted subjects always receive messages. Everyone else receives
    them only when their channel is enabled; otherwise the send is logged.
    """

    def __init__(
        self,
        whitelist: Iterable[str] = (),
        email_enabled: bool = False,
        in_app_enabled: bool = False,
    ):
        self.whitelist = frozenset(whitelist)
        self._enabled = {
            MessageType.EMAIL: email_enabled,
            MessageType.IN_APP: in_app_enabled,
        }

    @classmethod
    def from_config(cls, dispatch_config) -> "DispatchPolicy":
        return cls(
            whitelist=dispatch_config.whitelist,
            email_enabled=dispatch_config.email_enabled,
            in_app_enabled=dispatch_config.in_app_enabled,
        )

    def should_dispatch(self, channel: MessageType, subject_id: str) -> bool:
        return subject_id in self.whitelist or self._enabled[MessageType(channel)]

    def is_log_only(self, channel: MessageType, subject_id: str) -> bool:
        return not self.should_dispatch(channel, subject_id)
