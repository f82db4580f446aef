"""Template rendering for email and in-app messages using Jinja2.

Templates are versioned and live under
``<channel>/<template-name>/<version>/`` with a ``subject.j2`` and a
``content.html.j2`` file each.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jinja2 import BaseLoader, Environment, FileSystemLoader, StrictUndefined, TemplateError

from trainee_notifications.config.models import CHANNEL_KEYS
from trainee_notifications.domain.notification_types import MessageType

from .models import TemplateRenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedMessage:
    """Rendered subject line and HTML body."""

    subject: str
    body: str


class TemplateRenderer:
    """Renders versioned message templates.

    Args:
        template_dir: Root template directory (used when no loader is given)
        loader: Jinja2 loader, for tests or packaged templates
    """

    def __init__(self, template_dir: str = "templates", loader: Optional[BaseLoader] = None):
        self.env = Environment(
            loader=loader or FileSystemLoader(template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )

    @staticmethod
    def template_path(channel: MessageType, template_name: str, version: str, part: str) -> str:
        return f"{CHANNEL_KEYS[MessageType(channel)]}/{template_name}/{version}/{part}"

    def render(
        self,
        channel: MessageType,
        template_name: str,
        version: str,
        variables: Dict[str, Any],
    ) -> RenderedMessage:
        """Render the subject and body of a template version.

        Raises:
            TemplateRenderError: If a template is missing or references an undefined variable
        """
        try:
            subject_template = self.env.get_template(
                self.template_path(channel, template_name, version, "subject.j2")
            )
            content_template = self.env.get_template(
                self.template_path(channel, template_name, version, "content.html.j2")
            )

            subject = subject_template.render(variables).strip().replace("\n", " ")
            body = content_template.render(variables)

        except TemplateError as e:
            error_msg = f"Rendering {template_name} {version} failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise TemplateRenderError(error_msg) from e

        logger.debug(f"Rendered {channel} template {template_name} {version}")
        return RenderedMessage(subject=subject, body=body)
