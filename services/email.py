import logging
import os
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task, deliver_email

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Queue email on Celery when enabled, otherwise send directly.
    This function returns immediately and doesn't block the request when using Celery.
    """
    if settings.USE_CELERY:
        try:
            send_email_task.delay(to_email, subject, body)
            logger.debug("Email task queued to Celery for %s", to_email)
            return
        except Exception as e:
            logger.warning("Celery not available, falling back to direct email sending: %s", e)

    # Fallback: send email directly (synchronously)
    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    """Direct email sending fallback"""
    if not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured; email to %s not sent (subject: %s)", to_email, subject)
        return

    try:
        deliver_email(to_email, subject, body)
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        # Notifications never fail the request that triggered them
        logger.error("Email sending to %s failed: %s", to_email, e)
