"""
Pytest configuration and shared fixtures.

- Points DATABASE_URL at a throwaway SQLite file before the app is imported
- Runs background tasks inline so anchoring/ethscription effects are visible to assertions
- Replaces the ledger and the email gateway with in-memory fakes
"""
import os
import sys
import tempfile
from concurrent.futures import Executor, Future
from datetime import timedelta

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

_db_dir = tempfile.mkdtemp(prefix="openproposal-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["BLOCKCHAIN_PRIVATE_KEY"] = ""
os.environ["MAILGUN_API_KEY"] = ""
os.environ["MAILGUN_DOMAIN"] = ""
os.environ["RECONCILER_ENABLED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Document, Recipient, User  # noqa: E402
from app.services import ledger, notifications, tasks  # noqa: E402
from app.services.auth import create_access_token  # noqa: E402
from app.services.clock import utcnow  # noqa: E402
from app.services.ledger import LedgerError, NetworkConfig  # noqa: E402
from app.services.tokens import generate_access_token  # noqa: E402


class InlineExecutor(Executor):
    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeLedger:
    """In-memory stand-in for LedgerClient."""

    def __init__(self):
        self.network = NetworkConfig("Base", 8453, "http://ledger.test", "https://explorer.test/tx/{tx_hash}")
        self.account_address = "0x" + "a" * 40
        self.sent = []
        self.transactions = {}
        self.fail_all = False
        self.fail_to = set()

    @property
    def chain_id(self):
        return self.network.chain_id

    def explorer_url(self, tx_hash):
        return self.network.explorer_tx_url.format(tx_hash=tx_hash)

    def send_data_transaction(self, to, data):
        if self.fail_all or to in self.fail_to:
            raise LedgerError("rpc unavailable")
        self.sent.append((to, data))
        tx_hash = "0x" + f"{len(self.sent):064x}"
        self.transactions[tx_hash] = {"hash": tx_hash, "to": to, "input": data, "blockNumber": 1000 + len(self.sent)}
        return tx_hash

    def wait_for_confirmation(self, tx_hash, timeout):
        return {"status": 1, "transactionHash": tx_hash}

    def get_transaction(self, tx_hash):
        return self.transactions.get(tx_hash)

    def get_block(self, block_number):
        return {"number": block_number, "timestamp": 1767225600}


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def inline_tasks():
    tasks.set_executor(InlineExecutor())
    yield
    tasks.set_executor(None)


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    outbox = []

    def fake_send(to_email, subject, html_content, text_content=None):
        outbox.append({"to": to_email, "subject": subject, "text": text_content})
        return True

    monkeypatch.setattr(notifications, "send_email", fake_send)
    return outbox


@pytest.fixture(autouse=True)
def no_ledger(monkeypatch):
    """Ledger unconfigured unless a test asks for fake_ledger."""
    monkeypatch.setattr(ledger, "get_ledger_client", lambda network=None: None)


@pytest.fixture
def fake_ledger(monkeypatch):
    fake = FakeLedger()
    monkeypatch.setattr(ledger, "get_ledger_client", lambda network=None: fake)
    return fake


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def owner(db):
    user = User(email="owner@example.com", full_name="Olivia Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner_headers(owner):
    return {"Authorization": f"Bearer {create_access_token(owner.id, owner.email)}"}


def make_document(db, owner, *, content=None, settings=None, status="sent", expires_in=None, title="Website Redesign Proposal"):
    document = Document(
        user_id=owner.id,
        title=title,
        status=status,
        content=content if content is not None else [{"id": "b1", "type": "text", "content": "Scope of work"}],
        settings=settings or {},
        expires_at=(utcnow() + expires_in) if expires_in is not None else None,
        sent_at=utcnow() if status != "draft" else None,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def add_recipient(db, document, email, *, role="signer", signing_order=1, name=None):
    recipient = Recipient(
        document_id=document.id,
        email=email,
        name=name or email.split("@")[0].title(),
        role=role,
        signing_order=signing_order,
        access_token=generate_access_token(),
    )
    db.add(recipient)
    db.commit()
    db.refresh(recipient)
    return recipient


def signature_body(name="Alice Signer"):
    return {"signatureData": {"type": "typed", "data": name}}


EXPIRED = timedelta(days=-1)
