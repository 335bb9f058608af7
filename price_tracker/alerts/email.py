"""Email notifications to product subscribers."""

import asyncio
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import List, Optional

from loguru import logger

from ..scoring.notification import NotificationType

TITLE_PREVIEW_LENGTH = 20


@dataclass
class ProductInfo:
    """Product details shown in a notification."""

    title: str
    url: str
    current_price: Optional[float] = None
    currency: str = "$"


@dataclass
class EmailContent:
    """Rendered email."""

    subject: str
    body: str


class EmailNotifier:
    """Render and deliver product notifications via SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_email: Optional[str] = None,
    ):
        """Initialize email notifier.

        Args:
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_email: Sender address, defaults to the SMTP username
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user

    def render(self, product: ProductInfo, kind: NotificationType) -> EmailContent:
        """Render the email for a notification kind.

        Args:
            product: Product details
            kind: Notification kind, anything but NONE

        Returns:
            Subject and HTML body
        """
        title = escape(product.title)
        short_title = escape(self._shorten(product.title))
        link = f'<a href="{escape(product.url, quote=True)}" target="_blank">{title}</a>'
        price = self._format_price(product)

        if kind == NotificationType.WELCOME:
            subject = f"Welcome to Price Tracking for {short_title}"
            headline = f"You are now tracking {title}"
            message = f"<p>We will email you when {link} changes price or comes back in stock.</p>"
        elif kind == NotificationType.LOWEST_EVER:
            subject = f"Lowest Price Alert for {short_title}"
            headline = "Lowest price ever!"
            message = f"<p>{link} has reached its lowest recorded price{price}. Grab it now.</p>"
        elif kind == NotificationType.PRICE_DROP:
            subject = f"Price Drop Alert for {short_title}"
            headline = "Price drop"
            message = f"<p>{link} just got cheaper{price}.</p>"
        elif kind == NotificationType.BACK_IN_STOCK:
            subject = f"{short_title} is now back in stock!"
            headline = "Back in stock"
            message = f"<p>{link} is available again. Get it before it sells out.</p>"
        elif kind == NotificationType.THRESHOLD_MET:
            subject = f"Discount Alert for {short_title}"
            headline = "Your target is met"
            message = f"<p>{link} is now available at a price you were waiting for{price}.</p>"
        else:
            raise ValueError(f"Nothing to render for notification type: {kind}")

        return EmailContent(subject=subject, body=self._wrap_html(headline, message))

    async def send(self, content: EmailContent, recipients: List[str]) -> bool:
        """Send one email to all recipients.

        Args:
            content: Rendered email
            recipients: Recipient email addresses

        Returns:
            True if email sent successfully
        """
        if not recipients:
            logger.warning("No email recipients given")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = content.subject
        msg["From"] = self.from_email
        msg["To"] = self.from_email
        msg.attach(MIMEText(content.body, "html"))

        try:
            await asyncio.to_thread(self._deliver, msg, recipients)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{content.subject}': {e}")
            return False

        logger.info(f"Email sent to {len(recipients)} recipients: {content.subject}")
        return True

    def _deliver(self, msg: MIMEMultipart, recipients: List[str]):
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            server.starttls()
            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg, to_addrs=recipients)

    @staticmethod
    def _shorten(title: str) -> str:
        if len(title) <= TITLE_PREVIEW_LENGTH:
            return title
        return f"{title[:TITLE_PREVIEW_LENGTH]}..."

    @staticmethod
    def _format_price(product: ProductInfo) -> str:
        if product.current_price is None:
            return ""
        return f" at {escape(product.currency)}{product.current_price:.2f}"

    @staticmethod
    def _wrap_html(headline: str, message: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background-color: #f4f4f4; padding: 20px; border-radius: 5px; }}
                .footer {{ text-align: center; color: #666; font-size: 12px; margin-top: 30px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h2>{headline}</h2>
                </div>
                {message}
                <div class="footer">
                    <p>You are receiving this email because you subscribed to price updates for this product.</p>
                    <p>Price Tracker | {datetime.utcnow().strftime('%Y-%m-%d %H:%M UTC')}</p>
                </div>
            </div>
        </body>
        </html>
        """
