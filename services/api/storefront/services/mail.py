"""Transactional email.

Flow for one message:
1. Render templates/email/<name>.html with Jinja2
2. Inline <style> rules into style attributes (premailer)
3. Derive a plain-text alternative from the inlined HTML (html2text)
4. Hand a multipart/alternative message to the SMTP transport

Only the handoff is reported: a successful send means the relay accepted
the message, not that it was delivered. There is no retry or queueing.
"""

import asyncio
from email.message import EmailMessage
import logging
from pathlib import Path
import smtplib
import threading
from typing import Any

import html2text
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from premailer import Premailer

from storefront.settings import Settings

logger = logging.getLogger("uvicorn.error")


class MailDispatchError(RuntimeError):
    pass


class SmtpTransport:
    """SMTP relay connection, opened once and reused for every message."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        user: str = "",
        password: str = "",
        starttls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout
        self._smtp: smtplib.SMTP | None = None
        # smtplib.SMTP is not thread-safe; one transaction at a time
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpTransport":
        return cls(
            settings.mail_host,
            settings.mail_port,
            user=settings.mail_user,
            password=settings.mail_pass,
            starttls=settings.mail_starttls,
            timeout=settings.mail_timeout,
        )

    def open(self) -> smtplib.SMTP:
        with self._lock:
            return self._open()

    def close(self) -> None:
        with self._lock:
            self._close()

    def send(self, message: EmailMessage) -> None:
        """Send one message, reconnecting once if the relay dropped us."""
        with self._lock:
            smtp = self._open()
            try:
                smtp.send_message(message)
            except smtplib.SMTPServerDisconnected:
                self._close()
                self._open().send_message(message)

    def _open(self) -> smtplib.SMTP:
        if self._smtp is not None:
            return self._smtp
        smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.starttls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
        except (smtplib.SMTPException, OSError):
            smtp.close()
            raise
        self._smtp = smtp
        return smtp

    def _close(self) -> None:
        if self._smtp is None:
            return
        try:
            self._smtp.quit()
        except (smtplib.SMTPException, OSError):
            self._smtp.close()
        finally:
            self._smtp = None


class MailDispatcher:
    """Renders email templates and hands messages to a transport."""

    def __init__(self, transport: SmtpTransport, templates_dir: Path, sender: str) -> None:
        self.transport = transport
        self.sender = sender
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html"]),
        )
        self.text_maker = html2text.HTML2Text()
        self.text_maker.body_width = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailDispatcher":
        return cls(
            SmtpTransport.from_settings(settings),
            settings.mail_templates_dir,
            settings.mail_from,
        )

    def generate_html(self, template: str, **context: Any) -> str:
        """Render email/<template>.html and inline its CSS."""
        html = self.env.get_template(f"email/{template}.html").render(**context)
        return Premailer(html, remove_classes=False, disable_validation=True).transform()

    def render(self, template: str, **context: Any) -> tuple[str, str]:
        """Return (html, text) bodies for a template.

        Raises:
            MailDispatchError: Template missing or failed to render.
        """
        try:
            html = self.generate_html(template, **context)
        except TemplateError as exc:
            raise MailDispatchError(f"Cannot render email template {template!r}: {exc}") from exc
        text = self.text_maker.handle(html).strip()
        return html, text

    def build_message(self, *, to: str, subject: str, html: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, template: str, *, to: str, subject: str, **context: Any) -> None:
        """Render a template and hand it to the transport.

        Raises:
            MailDispatchError: Rendering failed or the relay rejected the handoff.
        """
        html, text = self.render(template, subject=subject, **context)
        message = self.build_message(to=to, subject=subject, html=html, text=text)
        try:
            await asyncio.to_thread(self.transport.send, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"Mail handoff failed for {to} ({template}): {exc}")
            raise MailDispatchError(f"Mail handoff failed: {exc}") from exc
        logger.info(f"Mail handed off to {to} ({template})")

    def close(self) -> None:
        self.transport.close()
