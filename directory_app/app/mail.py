from __future__ import annotations
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

import requests
from flask import current_app


def send_email(subject: str, recipient: str, body: str, html: str | None = None) -> bool:
    provider = current_app.config.get("EMAIL_PROVIDER", "smtp")
    # Resend (API) provider
    if provider == "resend":
        try:
            api_key = current_app.config.get("RESEND_API_KEY")
            if not api_key:
                current_app.logger.error("RESEND_API_KEY not configured")
                return False
            payload = {
                "from": current_app.config.get("MAIL_DEFAULT_SENDER"),
                "to": [recipient],
                "subject": subject,
                "text": body,
            }
            if html:
                payload["html"] = html
            resp = requests.post(
                "https://api.resend.com/emails",
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                json=payload,
                timeout=10,
            )
            if resp.status_code in (200, 202):
                return True
            current_app.logger.error("Resend API returned non-success: %s %s", resp.status_code, resp.text)
            return False
        except requests.RequestException:
            current_app.logger.exception("Failed to send email via Resend API")
            return False

    # Fallback to SMTP if provider is not 'resend'
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = current_app.config.get("MAIL_DEFAULT_SENDER")
    msg["To"] = recipient
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    try:
        mail_server: str = str(current_app.config.get("MAIL_SERVER"))
        mail_port: int = int(current_app.config.get("MAIL_PORT") or 0)
        server = smtplib.SMTP(mail_server, mail_port, timeout=10)
        if bool(current_app.config.get("MAIL_USE_TLS")):
            server.starttls()
        username = str(current_app.config.get("MAIL_USERNAME") or "")
        password = str(current_app.config.get("MAIL_PASSWORD") or "")
        if username and password:
            server.login(username, password)
        server.send_message(msg)
        server.quit()
        return True
    except (OSError, smtplib.SMTPException):
        current_app.logger.exception("Failed to send email via SMTP fallback")
        return False


def invitation_url(secret: str) -> str:
    base = str(current_app.config.get("APP_BASE_URL", "")).rstrip("/")
    return f"{base}/accept-invitation?{urlencode({'token': secret})}"


def send_invitation_email(invitation, secret: str, organization_name: str, reminder: bool = False) -> bool:
    """Deliver the one-time secret to the invitee. Returns False when delivery failed."""
    if reminder:
        subject = f"Reminder: Join {organization_name}"
    else:
        subject = f"You're invited to join {organization_name}"
    greeting = f"Hello {invitation.first_name}," if invitation.first_name else "Hello,"
    lines = [
        greeting,
        "",
        f"You've been invited to join {organization_name} as {invitation.role}.",
    ]
    if invitation.designation:
        lines.append(f"Designation: {invitation.designation}")
    if invitation.department:
        lines.append(f"Department: {invitation.department}")
    lines += [
        "",
        "Complete your registration here:",
        invitation_url(secret),
        "",
        f"This link expires on {invitation.expires_at:%Y-%m-%d %H:%M} UTC and can only be used once.",
    ]
    return send_email(subject, invitation.email, "\n".join(lines))
