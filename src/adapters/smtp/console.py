"""
Console invitation sender adapter - Implements InvitationSender protocol.

This module provides a console-based implementation of the domain's
invitation sender port, logging registration URLs for demo purposes.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleInvitationSender:
    """
    Implements InvitationSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints registration URLs to stdout.
    """

    def send_admin_invitation(self, email: str, registration_url: str) -> None:
        """
        Log the admin registration URL (simulates email delivery).

        In production, this would be replaced with an SMTP adapter.

        Args:
            email: Recipient email address (normalized by domain layer)
            registration_url: URL carrying the token
        """
        logger.info("[ADMIN INVITATION] Email: %s URL: %s", email, registration_url)
