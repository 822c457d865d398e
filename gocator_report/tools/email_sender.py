"""
Email sender for delivering shift reports.
"""

import os
import smtplib
import argparse
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.mime.base import MIMEBase
from email import encoders
from pathlib import Path
from typing import List, Optional, Sequence
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def parse_recipients(value: Optional[str]) -> List[str]:
    """Split a comma or semicolon separated address list."""
    if not value:
        return []
    return [address.strip() for address in value.replace(';', ',').split(',') if address.strip()]


class EmailSender:
    """Sends report emails with an optional CSV attachment."""

    def __init__(self):
        self.smtp_server = os.getenv('SMTP_SERVER', 'smtp.gmail.com')
        self.smtp_port = int(os.getenv('SMTP_PORT', '587'))
        self.smtp_username = os.getenv('SMTP_USERNAME')
        self.smtp_password = os.getenv('SMTP_PASSWORD')
        self.smtp_use_tls = os.getenv('SMTP_USE_TLS', 'true').lower() == 'true'
        self.smtp_timeout = float(os.getenv('SMTP_TIMEOUT_SECONDS', '60'))
        self.sender_name = os.getenv('REPORT_SENDER_NAME', 'AMV Gocator Report')

        if not all([self.smtp_username, self.smtp_password]):
            raise ValueError("SMTP_USERNAME and SMTP_PASSWORD environment variables are required")

    def build_message(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        attachment_path: Optional[str] = None
    ) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg['From'] = f"{self.sender_name} <{self.smtp_username}>"
        msg['To'] = ', '.join(recipients)
        msg['Subject'] = subject

        msg.attach(MIMEText(body, 'plain'))

        if attachment_path:
            attachment = Path(attachment_path)
            with open(attachment, 'rb') as f:
                part = MIMEBase('application', 'octet-stream')
                part.set_payload(f.read())

            encoders.encode_base64(part)
            part.add_header(
                'Content-Disposition',
                f'attachment; filename="{attachment.name}"'
            )
            msg.attach(part)

        return msg

    def deliver(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        attachment_path: Optional[str] = None
    ) -> bool:
        """Send one email. Returns False instead of raising on any failure."""
        if not recipients:
            logger.error("No recipients specified.")
            return False

        if attachment_path and not Path(attachment_path).is_file():
            logger.error(f"Attachment file not found: {attachment_path}")
            return False

        try:
            msg = self.build_message(recipients, subject, body, attachment_path)
        except OSError as e:
            logger.error(f"Failed to attach {attachment_path}: {e}")
            return False

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.smtp_timeout) as server:
                if self.smtp_use_tls:
                    server.starttls()

                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg, to_addrs=list(recipients))

            logger.info(f"Email sent successfully to {', '.join(recipients)}")
            return True

        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending '{subject}': {e}")
            return False
        except OSError as e:
            logger.error(f"Connection error sending '{subject}': {e}")
            return False


def main():
    """Send an existing report file by hand."""
    parser = argparse.ArgumentParser(description='Send a Gocator report by email')
    parser.add_argument('--file', '-f', required=True, help='Report CSV file to attach')
    parser.add_argument('--recipient', '-r', action='append',
                        help='Recipient email address (repeatable, defaults to REPORT_RECIPIENTS)')
    parser.add_argument('--subject', '-s', help='Email subject')

    args = parser.parse_args()

    recipients = args.recipient or parse_recipients(os.getenv('REPORT_RECIPIENTS'))
    report_path = Path(args.file)
    subject = args.subject or f"AMV Gocator Report - {report_path.stem}"
    body = f"Please find attached the Gocator Report {report_path.name}."

    try:
        sender = EmailSender()
    except ValueError as e:
        print(f"❌ Email sending failed: {e}")
        exit(1)

    if sender.deliver(recipients, subject, body, str(report_path)):
        print(f"✅ Email sent to {', '.join(recipients)} with attachment {report_path.name}")
    else:
        print("❌ Email sending failed, see log for details")
        exit(1)


if __name__ == "__main__":
    main()
