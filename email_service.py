"""
Email Service for Authentication Notifications

A failed send is raised as EmailDeliveryError so the caller can abort
the surrounding operation.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from config import SecurityConfig
from exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailNotifier:
    def __init__(self, config: SecurityConfig):
        self.config = config

    def send_email(self, to_email: str, subject: str, body_html: str):
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.config.EMAIL_FROM
        msg['To'] = to_email
        msg.attach(MIMEText(body_html, 'html'))

        try:
            with smtplib.SMTP(self.config.SMTP_HOST, self.config.SMTP_PORT,
                              timeout=self.config.SMTP_TIMEOUT) as server:
                if self.config.SMTP_USE_TLS:
                    server.starttls()
                if self.config.SMTP_USERNAME and self.config.SMTP_PASSWORD:
                    server.login(self.config.SMTP_USERNAME, self.config.SMTP_PASSWORD)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send '%s' email: %s", subject, e)
            raise EmailDeliveryError(f"Could not deliver '{subject}' email") from e

    def send_verification(self, to_email: str, name: str, token: str, code: str):
        confirm_url = f"{self.config.SERVER_URL}/confirmation/{token}?code={code}"
        body = f"""
        <h2>Welcome, {escape(name)}!</h2>
        <p>Please confirm your account by clicking the link below:</p>
        <p><a href="{confirm_url}">Confirm Account</a></p>
        <p>Your confirmation code is <b>{code}</b>.</p>
        """
        self.send_email(to_email, "Confirm Your Account", body)

    def send_confirmed(self, to_email: str, name: str):
        body = f"""
        <h2>Hi {escape(name)},</h2>
        <p>Your account has been confirmed. You can now log in.</p>
        """
        self.send_email(to_email, "Account Confirmed", body)

    def send_reset_link(self, to_email: str, name: str, token: str):
        reset_url = f"{self.config.SERVER_URL}/reset-password/{token}"
        minutes = int(self.config.PASSWORD_RESET_WINDOW.total_seconds() // 60)
        body = f"""
        <h2>Password Reset Request</h2>
        <p>Hi {escape(name)}, click the link below to reset your password:</p>
        <p><a href="{reset_url}">Reset Password</a></p>
        <p>This link expires in {minutes} minutes.</p>
        <p>If you didn't request this, please ignore this email.</p>
        """
        self.send_email(to_email, "Reset Your Password", body)

    def send_password_changed(self, to_email: str, name: str):
        body = f"""
        <h2>Hi {escape(name)},</h2>
        <p>Your password was just changed.</p>
        <p>If this wasn't you, reset your password immediately.</p>
        """
        self.send_email(to_email, "Your Password Was Changed", body)
