"""
Email delivery.

Messages are assembled by the services that send them and delivered through
Resend. Delivery errors are raised to the caller, which decides how to
report them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import resend


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str


class EmailSender(Protocol):
    async def send_email(self, message: EmailMessage) -> None: ...


class ResendSender:
    """EmailSender that delivers HTML messages via the Resend API."""

    def __init__(self, api_key: str, from_address: str) -> None:
        self.api_key = api_key
        self.from_address = from_address

    async def send_email(self, message: EmailMessage) -> None:
        resend.api_key = self.api_key
        params: resend.Emails.SendParams = {
            "from": self.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.body,
        }
        # The Resend client is synchronous
        await asyncio.to_thread(resend.Emails.send, params)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def invitation_email(to_email: str, org_name: str, base_url: str) -> EmailMessage:
    """Build the organization invitation email with its confirmation link."""
    accept_url = f"{base_url.rstrip('/')}/accept-invitation?org={org_name}"
    return EmailMessage(
        to=to_email,
        subject=f"Invitation to join {org_name} organization",
        body=f"""
            <h2>You've been invited to join {org_name}</h2>
            <p>You have been added as a member of the
            <strong>{org_name}</strong> organization.</p>
            <p>
                <a href="{accept_url}"
                   style="background:#6366f1;color:#fff;padding:12px 24px;
                          border-radius:6px;text-decoration:none;display:inline-block;">
                    Confirm membership
                </a>
            </p>
            <p>If you did not expect this invitation, you can safely ignore this email.</p>
        """,
    )
