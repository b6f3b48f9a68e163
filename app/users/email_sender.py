# -*- coding: utf-8 -*-
"""
Email sender for account verification links.

Uses Python built-in smtplib only — no external email library.
SMTP_PASSWORD must be a Gmail App Password (NOT regular password).

Setup:
  Gmail → Google Account → Security → 2-Step Verification → ON
  → App Passwords → Generate → Copy 16-char password → .env SMTP_PASSWORD
"""
from __future__ import annotations

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import Settings
from app.utils.logger import get_logger

logger = get_logger(__name__)


class Mailer:

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(self._settings.smtp_user and self._settings.smtp_password)

    async def send_verification_email(self, user_email: str, name: str, link: str) -> bool:
        """Send the "verify your email" message.

        smtplib is synchronous, so the send runs in the default executor.
        Never raises: a lost email is recoverable (login re-sends the link),
        a failed signup is not. Returns True when the message was handed to SMTP.
        """
        subject = "Verify Your Email"
        text_body = f"Hi {name},\n\nPlease verify your email: {link}\n"
        html_body = f"""
        <div style="max-width:520px;margin:0 auto;font-family:'Segoe UI',Arial,sans-serif;">
            <h2 style="color:#111827;">Welcome to {self._settings.smtp_from_name}, {name}!</h2>
            <p style="color:#374151;font-size:14px;">
                Please confirm your email address to finish creating your account.
            </p>
            <p style="text-align:center;margin:24px 0;">
                <a href="{link}"
                   style="display:inline-block;background:#3b82f6;color:#fff;text-decoration:none;
                          padding:12px 32px;border-radius:24px;font-size:15px;font-weight:600;">
                    VERIFY EMAIL
                </a>
            </p>
            <p style="color:#6b7280;font-size:12px;">Or open this link: {link}</p>
        </div>
        """

        if not self.configured:
            logger.warning("SMTP credentials not configured — verification email to %s skipped", user_email)
            return False

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp, user_email, subject, text_body, html_body)
        except Exception as e:
            logger.error("Verification email failed for %s: %s", user_email, e)
            return False

        logger.info("Verification email sent to %s", user_email)
        return True

    # ── SMTP helper ───────────────────────────────────────────────────────────

    def _send_smtp(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        """Send an email via SMTP. Raises on failure (caller must handle)."""
        s = self._settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{s.smtp_from_name} <{s.smtp_user}>"
        msg["To"] = to_email

        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(s.smtp_user, s.smtp_password)
            server.sendmail(s.smtp_user, to_email, msg.as_string())
