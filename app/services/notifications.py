"""Notification gateway (Mailgun email). Best-effort: callers never see a failure."""
from html import escape

from app.config import get_settings

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"


def send_email(to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send email via Mailgun. Returns True if sent, False when unconfigured or on failure."""
    settings = get_settings()
    if settings.mailgun_api_key and settings.mailgun_domain:
        return _send_email_mailgun(to_email, subject, html_content, text_content=text_content, settings=settings)
    print(
        f"[Email] NOT SENT: to={to_email} subject={subject}. "
        f"MAILGUN_API_KEY={'set' if settings.mailgun_api_key else 'MISSING'} "
        f"MAILGUN_DOMAIN={'set' if settings.mailgun_domain else 'MISSING'}.",
        flush=True,
    )
    return False


def _send_email_mailgun(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    try:
        import httpx

        base = (settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
        domain = (settings.mailgun_domain or "").strip().lower()
        from_addr = (settings.mailgun_from_email or "").strip()
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            from_addr = f"noreply@{domain}"
        data = {
            "from": f"{settings.mailgun_from_name} <{from_addr}>",
            "to": to_email,
            "subject": subject,
            "text": text_content or "",
            "html": html_content or "",
        }
        with httpx.Client(timeout=10.0) as client:
            r = client.post(f"{base}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
            if 200 <= r.status_code < 300:
                print(f"[Mailgun] API success: to={to_email} status={r.status_code}", flush=True)
                return True
            if r.status_code == 401 and base == MAILGUN_US_BASE:
                print("[Mailgun] 401 with US endpoint. Retrying with EU endpoint...", flush=True)
                r2 = client.post(f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
                if 200 <= r2.status_code < 300:
                    return True
                print(f"[Mailgun] EU request failed: status={r2.status_code} body={r2.text[:500]}", flush=True)
                return False
            print(f"[Mailgun] API failed: status={r.status_code} to={to_email} body={r.text[:500]}", flush=True)
            return False
    except Exception as e:
        print(f"[Mailgun] Exception: to={to_email} error={type(e).__name__}: {e}", flush=True)
        return False


def _wrap_html(*paragraphs: str) -> str:
    return "".join(f"<p>{p}</p>" for p in paragraphs)


def send_document_invitation(to_email: str, recipient_name: str, sender_name: str, document_title: str, signing_url: str, role: str) -> bool:
    action = "sign" if role == "signer" else "review"
    subject = f"{sender_name or 'Someone'} sent you \"{document_title}\" to {action}"
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f"{sender_name or 'Someone'} has sent you \"{document_title}\" to {action}.\n\n"
        f"Open the document: {signing_url}\n"
    )
    html = _wrap_html(
        escape(greeting),
        f"{escape(sender_name or 'Someone')} has sent you <strong>{escape(document_title)}</strong> to {action}.",
        f"<a href=\"{escape(signing_url)}\">Open the document</a>",
    )
    return send_email(to_email, subject, html_content=html, text_content=text)


def send_owner_document_viewed(owner_email: str, document_title: str, viewer_name: str, viewer_email: str) -> bool:
    who = viewer_name or viewer_email
    subject = f"\"{document_title}\" was opened by {who}"
    text = f"{who} <{viewer_email}> just opened \"{document_title}\".\n"
    html = _wrap_html(f"<strong>{escape(who)}</strong> &lt;{escape(viewer_email)}&gt; just opened <strong>{escape(document_title)}</strong>.")
    return send_email(owner_email, subject, html_content=html, text_content=text)


def send_signing_confirmation(to_email: str, recipient_name: str, document_title: str, signed_at: str) -> bool:
    subject = f"You signed \"{document_title}\""
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
    text = f"{greeting}\n\nYour signature on \"{document_title}\" was recorded at {signed_at}.\n"
    html = _wrap_html(
        escape(greeting),
        f"Your signature on <strong>{escape(document_title)}</strong> was recorded at {escape(signed_at)}.",
    )
    return send_email(to_email, subject, html_content=html, text_content=text)


def send_owner_document_completed(owner_email: str, document_title: str) -> bool:
    subject = f"\"{document_title}\" is fully signed"
    text = f"All signers have signed \"{document_title}\".\n"
    html = _wrap_html(f"All signers have signed <strong>{escape(document_title)}</strong>.")
    return send_email(owner_email, subject, html_content=html, text_content=text)


def send_ethscription_receipt(to_email: str, recipient_name: str, document_title: str, tx_hash: str, explorer_url: str, network: str) -> bool:
    subject = f"Your inscription for \"{document_title}\" is on-chain"
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f"An inscription from \"{document_title}\" was sent to your address on {network}.\n"
        f"Transaction: {tx_hash}\n{explorer_url}\n"
    )
    html = _wrap_html(
        escape(greeting),
        f"An inscription from <strong>{escape(document_title)}</strong> was sent to your address on {escape(network)}.",
        f"Transaction: <a href=\"{escape(explorer_url)}\">{escape(tx_hash)}</a>",
    )
    return send_email(to_email, subject, html_content=html, text_content=text)
