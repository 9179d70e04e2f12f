"""
Transactional email transport for competition registrations.

Every message is multipart/alternative: a plain-text part derived from the
rendered HTML (tags stripped with bleach) followed by the HTML itself.
Delivery runs on a daemon thread so the gateway webhook and the browser
redirect never wait on the mail server.

Usage:
    from archalley.services.email_service import send_email

    send_email(
        to="participant@example.com",
        subject="Registration Confirmed",
        template="emails/registration_confirmation.html",
        context={"user_name": "Jane"},
    )
"""

import logging
import re
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid

import bleach
from flask import current_app, render_template

logger = logging.getLogger(__name__)

_BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(html):
    """Plain-text fallback for mail clients that refuse HTML."""
    text = bleach.clean(html, tags=[], strip=True)
    lines = (line.strip() for line in text.splitlines())
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def build_message(app, to, subject, html_body, reply_to=None):
    recipients = [to] if isinstance(to, str) else list(to)
    sender = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME") or ""

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((app.config.get("MAIL_FROM_NAME", "Archalley"), sender))
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=False)
    msg["Message-ID"] = make_msgid(domain=sender.partition("@")[2] or None)

    reply_to = reply_to or app.config.get("SUPPORT_EMAIL")
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(html_to_text(html_body), "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


def _deliver(app, msg):
    """Hand a message to the SMTP relay. Runs on the mail thread."""
    config = app.config
    host = config.get("MAIL_SMTP_HOST")
    if not host:
        logger.warning(f"MAIL_SMTP_HOST not configured, dropping email to {msg['To']}")
        return

    username = config.get("MAIL_USERNAME")
    password = config.get("MAIL_PASSWORD")
    try:
        with smtplib.SMTP(host, config.get("MAIL_SMTP_PORT", 587), timeout=30) as server:
            server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP delivery to {msg['To']} failed: {e}")


def send_email(to, subject, template, context=None, reply_to=None):
    """
    Render a template and queue it for delivery.

    The template is rendered here, inside the caller's app context, so a
    broken template raises to the caller instead of dying on the mail thread.

    Args:
        to:        Recipient address (str or list).
        subject:   Subject line.
        template:  Jinja2 template path under templates/.
        context:   Template variables; app_base_url and support_email are
                   filled in when absent.
        reply_to:  Reply-To address, SUPPORT_EMAIL when omitted.
    """
    app = current_app._get_current_object()
    context = dict(context or {})
    context.setdefault("app_base_url", app.config.get("APP_BASE_URL", ""))
    context.setdefault("support_email", app.config.get("SUPPORT_EMAIL", ""))

    msg = build_message(app, to, subject, render_template(template, **context), reply_to)

    thread = threading.Thread(target=_deliver, args=(app, msg), daemon=True)
    thread.start()
