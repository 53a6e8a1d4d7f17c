"""Email sending via Resend API."""

import html
import logging
from typing import Optional

import resend

from ledgerly.settings import settings

logger = logging.getLogger(__name__)


def _resend_available() -> bool:
    if not settings.email_resend_api_key:
        logger.error("EMAIL_RESEND_API_KEY not configured - cannot send email")
        return False
    return True


def _masked_api_key() -> str:
    raw = str(settings.email_resend_api_key or "").strip()
    if not raw:
        return "(missing)"
    if len(raw) <= 10:
        return f"{raw[:2]}***"
    return f"{raw[:6]}...{raw[-4:]}"


def _extract_resend_message_id(response: object) -> Optional[str]:
    if isinstance(response, dict):
        value = response.get("id")
        return str(value).strip() if value else None
    value = getattr(response, "id", None)
    return str(value).strip() if value else None


def _card_html(heading: str, intro_html: str, button_label: str, link: str, footer_html: str) -> str:
    return f"""
    <html>
    <body style="margin:0;padding:0;background:#f3f4f6;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;color:#111827;">
      <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background:#f3f4f6;padding:28px 16px;">
        <tr>
          <td align="center">
            <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="max-width:640px;">
              <tr>
                <td style="background:#ffffff;border:1px solid #e5e7eb;border-radius:16px;padding:24px;">
                  <div style="font-size:22px;font-weight:800;line-height:1.2;margin:0 0 12px 0;">{heading}</div>
                  <div style="font-size:15px;line-height:1.6;color:#374151;margin:0 0 20px 0;">{intro_html}</div>
                  <table role="presentation" cellpadding="0" cellspacing="0" style="margin:0 0 20px 0;">
                    <tr>
                      <td style="border-radius:10px;background:#2563eb;">
                        <a href="{html.escape(link)}" style="display:inline-block;padding:12px 20px;font-size:15px;font-weight:700;color:#ffffff;text-decoration:none;border-radius:10px;">
                          {button_label}
                        </a>
                      </td>
                    </tr>
                  </table>
                  <div style="background:#f8fafc;border:1px solid #e5e7eb;border-radius:12px;padding:12px 14px;font-size:13px;line-height:1.5;color:#4b5563;">
                    {footer_html}
                  </div>
                </td>
              </tr>
            </table>
          </td>
        </tr>
      </table>
    </body>
    </html>
    """


def _send(kind: str, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
    if not _resend_available():
        return False

    resend.api_key = settings.email_resend_api_key

    try:
        params = {
            "from": settings.email_from_address,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }

        logger.info(
            "Sending %s email to %s via Resend (from=%s, key=%s)",
            kind,
            to_email,
            settings.email_from_address,
            _masked_api_key(),
        )
        response = resend.Emails.send(params)
        message_id = _extract_resend_message_id(response)
        if not message_id:
            logger.error("Resend returned no message id for %s email to %s. Raw response=%r", kind, to_email, response)
            return False
        logger.info("Email accepted by Resend for %s, ID: %s", to_email, message_id)
        return True

    except Exception as e:
        logger.error("Failed to send %s email to %s: %s", kind, to_email, e)
        return False


def send_invitation_email(
    to_email: str,
    invite_link: str,
    organization_name: str,
    inviter_name: Optional[str] = None,
    role: Optional[str] = None,
) -> bool:
    """Send an organization invitation.

    Args:
        to_email: Recipient email address
        invite_link: Frontend URL carrying the invitation token
        organization_name: Organization the recipient is invited to
        inviter_name: Name of the member who sent the invite (optional)
        role: Role the recipient will receive (optional)

    Returns:
        True if email sent successfully, False otherwise
    """
    org = html.escape(organization_name)
    who = f"<strong>{html.escape(inviter_name)}</strong> has invited you" if inviter_name else "You've been invited"
    who_text = f"{inviter_name} has invited you" if inviter_name else "You've been invited"
    role_phrase = f" as {role.lower()}" if role else ""
    role_html = html.escape(role_phrase)

    html_body = _card_html(
        "You're invited",
        f"{who} to join <strong>{org}</strong>{role_html} on Ledgerly.",
        "Accept Invitation",
        invite_link,
        f"<div>This invitation was sent to <strong>{html.escape(to_email)}</strong> and expires in "
        f"{settings.invitation_expiry_days} days.</div>"
        "<div style=\"margin-top:6px;\">If you didn't expect this invitation, you can safely ignore this email.</div>",
    )
    text_body = f"""
{who_text} to join {organization_name}{role_phrase} on Ledgerly.

Accept the invitation:
{invite_link}

---
This invitation expires in {settings.invitation_expiry_days} days.
If you didn't expect this invitation, you can safely ignore this email.
    """.strip()

    return _send("invitation", to_email, f"Invitation to join {organization_name}", html_body, text_body)


def send_invoice_email(
    to_email: str,
    view_link: str,
    invoice_number: str,
    amount: str,
    currency: str,
    due_date: Optional[str] = None,
    sender_name: Optional[str] = None,
    message: Optional[str] = None,
) -> bool:
    """Send an invoice share link to a client."""
    sender = sender_name or "Ledgerly"
    due_html = f" due on <strong>{html.escape(due_date)}</strong>" if due_date else ""
    due_text = f" due on {due_date}" if due_date else ""
    note_html = f"<div style=\"margin-top:12px;\">{html.escape(message)}</div>" if message else ""

    html_body = _card_html(
        f"Invoice {html.escape(invoice_number)}",
        f"{html.escape(sender)} sent you an invoice for <strong>{html.escape(amount)} {html.escape(currency or '')}</strong>{due_html}.{note_html}",
        "View Invoice",
        view_link,
        f"<div>Sent to <strong>{html.escape(to_email)}</strong>.</div>",
    )
    text_body = f"""
{sender} sent you an invoice for {amount} {currency}{due_text}.
{message or ''}

View the invoice:
{view_link}
    """.strip()

    return _send("invoice", to_email, f"Invoice {invoice_number} from {sender}", html_body, text_body)


def send_contract_email(
    to_email: str,
    view_link: str,
    contract_title: str,
    sender_name: Optional[str] = None,
    message: Optional[str] = None,
) -> bool:
    """Send a contract share link to a client."""
    sender = sender_name or "Ledgerly"
    note_html = f"<div style=\"margin-top:12px;\">{html.escape(message)}</div>" if message else ""

    html_body = _card_html(
        html.escape(contract_title),
        f"{html.escape(sender)} shared a contract with you for review.{note_html}",
        "Review Contract",
        view_link,
        f"<div>Sent to <strong>{html.escape(to_email)}</strong>.</div>",
    )
    text_body = f"""
{sender} shared a contract with you for review: {contract_title}
{message or ''}

Review the contract:
{view_link}
    """.strip()

    return _send("contract", to_email, f"Contract: {contract_title}", html_body, text_body)
