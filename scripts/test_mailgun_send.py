"""
Send a test email via Mailgun to verify signing notifications will go out.
Usage: python scripts/test_mailgun_send.py <to_email>
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.config import get_settings
from app.services.notifications import send_email


def main():
    to_email = (sys.argv[1] if len(sys.argv) > 1 else "").strip()
    if not to_email:
        print("Usage: python scripts/test_mailgun_send.py <to_email>")
        sys.exit(1)

    settings = get_settings()
    if not settings.mailgun_api_key or not settings.mailgun_domain:
        print("Mailgun is not configured. Set MAILGUN_API_KEY and MAILGUN_DOMAIN in .env")
        print(f"  MAILGUN_API_KEY: {'(set)' if settings.mailgun_api_key else '(missing)'}")
        print(f"  MAILGUN_DOMAIN: {repr(settings.mailgun_domain) if settings.mailgun_domain else '(missing)'}")
        sys.exit(1)

    print(f"Sending test email to: {to_email} via {settings.mailgun_domain}")
    subject = f"[{settings.app_name}] Test email"
    text = "If you received this, signing invitations and receipts will be delivered."
    html = "<p>If you received this, signing invitations and receipts will be delivered.</p>"

    if send_email(to_email, subject, html, text_content=text):
        print("Success: test email sent. Check the inbox (and spam) for", to_email)
    else:
        print("Failed: Mailgun returned an error. For EU accounts set MAILGUN_BASE_URL=https://api.eu.mailgun.net")
        sys.exit(1)


if __name__ == "__main__":
    main()
