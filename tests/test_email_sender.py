import os
import smtplib
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from gocator_report.tools.email_sender import EmailSender, parse_recipients


SMTP_ENV = {
    'SMTP_SERVER': 'smtp.example.com',
    'SMTP_PORT': '2525',
    'SMTP_USERNAME': 'reports@example.com',
    'SMTP_PASSWORD': 'secret',
    'SMTP_USE_TLS': 'true',
    'SMTP_TIMEOUT_SECONDS': '15',
}


class EmailSenderTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.report = Path(self._tmp.name) / 'Gocator_Report_Shift_1_07-Mar-2025.csv'
        self.report.write_text('Top:Date,Top:Timestamp,Shift\n07-Mar-2025,06:00:00.000,1\n', encoding='utf-8')

        env = mock.patch.dict(os.environ, SMTP_ENV)
        env.start()
        self.addCleanup(env.stop)

        smtp = mock.patch('gocator_report.tools.email_sender.smtplib.SMTP')
        self.smtp_class = smtp.start()
        self.addCleanup(smtp.stop)
        self.server = self.smtp_class.return_value.__enter__.return_value

        self.sender = EmailSender()

    def tearDown(self):
        self._tmp.cleanup()

    def test_successful_delivery(self):
        ok = self.sender.deliver(['a@example.com', 'b@example.com'], 'Subject', 'Body', str(self.report))

        self.assertTrue(ok)
        self.smtp_class.assert_called_once_with('smtp.example.com', 2525, timeout=15.0)
        self.server.starttls.assert_called_once()
        self.server.login.assert_called_once_with('reports@example.com', 'secret')

        msg = self.server.send_message.call_args[0][0]
        self.assertEqual(msg['Subject'], 'Subject')
        self.assertEqual(msg['To'], 'a@example.com, b@example.com')
        self.assertEqual(
            self.server.send_message.call_args[1]['to_addrs'],
            ['a@example.com', 'b@example.com']
        )
        filenames = [part.get_filename() for part in msg.get_payload()]
        self.assertIn(self.report.name, filenames)

    def test_authentication_failure_returns_false(self):
        self.server.login.side_effect = smtplib.SMTPAuthenticationError(535, b'bad credentials')

        self.assertFalse(self.sender.deliver(['a@example.com'], 'Subject', 'Body', str(self.report)))

    def test_connection_failure_returns_false(self):
        self.smtp_class.side_effect = ConnectionRefusedError("refused")

        self.assertFalse(self.sender.deliver(['a@example.com'], 'Subject', 'Body'))

    def test_missing_attachment_is_not_sent(self):
        missing = str(Path(self._tmp.name) / 'absent.csv')

        self.assertFalse(self.sender.deliver(['a@example.com'], 'Subject', 'Body', missing))
        self.smtp_class.assert_not_called()

    def test_no_recipients_is_not_sent(self):
        self.assertFalse(self.sender.deliver([], 'Subject', 'Body', str(self.report)))
        self.smtp_class.assert_not_called()

    def test_tls_can_be_disabled(self):
        with mock.patch.dict(os.environ, {'SMTP_USE_TLS': 'false'}):
            sender = EmailSender()

        self.assertTrue(sender.deliver(['a@example.com'], 'Subject', 'Body'))
        self.server.starttls.assert_not_called()

    def test_credentials_are_required(self):
        with mock.patch.dict(os.environ):
            del os.environ['SMTP_PASSWORD']
            with self.assertRaises(ValueError):
                EmailSender()


class ParseRecipientsTests(unittest.TestCase):
    def test_splits_on_commas_and_semicolons(self):
        self.assertEqual(
            parse_recipients(' a@example.com; b@example.com,,c@example.com '),
            ['a@example.com', 'b@example.com', 'c@example.com']
        )

    def test_empty_values(self):
        self.assertEqual(parse_recipients(None), [])
        self.assertEqual(parse_recipients(''), [])


if __name__ == '__main__':
    unittest.main()
