"""Outbound account links — password reset, email sign-in, invitations.

Learn: Mail delivery is not wired up, so every link ends here. The event is
always logged with a masked address; the link itself is only written out
in development, where it stands in for the email.
"""

import structlog

from clara.config import settings
from clara.logging import mask_email

logger = structlog.get_logger()

RESET_PASSWORD_PATH = "/reset-password"
LINK_LOGIN_PATH = "/auth/link-login"


def build_link(path: str, token: str, **params: str) -> str:
    query = "&".join([f"token={token}"] + [f"{k}={v}" for k, v in params.items()])
    return f"{settings.frontend_url}{path}?{query}"


def deliver_link(event: str, email: str, link: str) -> None:
    """Hand a link to its recipient."""
    logger.info(
        event,
        email=mask_email(email),
        link=link if settings.is_development else None,
    )
