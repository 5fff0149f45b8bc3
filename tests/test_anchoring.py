"""Anchoring, ethscriptions, reconciler and the verification read path."""
from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError

from app.models import Document, DocumentEvent
from app.services import anchoring
from app.services.canonical import create_inscription_payload

from conftest import add_recipient, make_document, signature_body

ETH_ADDRESS = "0x" + "b" * 40


def _complete(client, db, owner, content=None):
    doc = make_document(db, owner, content=content)
    alice = add_recipient(db, doc, "alice@example.com")
    bob = add_recipient(db, doc, "bob@example.com")
    for r in (alice, bob):
        assert client.post(f"/sign/{r.access_token}", json=signature_body()).status_code == 200
    return doc


def _reload(db, doc_id):
    db.expire_all()
    return db.query(Document).filter(Document.id == doc_id).first()


def _events(db, doc_id, event_type):
    db.expire_all()
    return (
        db.query(DocumentEvent)
        .filter(DocumentEvent.document_id == doc_id, DocumentEvent.event_type == event_type)
        .order_by(DocumentEvent.id)
        .all()
    )


class TestAnchorDocument:
    def test_completion_anchors_once(self, client, db, owner, fake_ledger):
        doc = _complete(client, db, owner)
        document = _reload(db, doc.id)
        assert document.blockchain_tx_hash == "0x" + f"{1:064x}"
        assert document.blockchain_verified_at is not None

        (event,) = _events(db, doc.id, "blockchain_verified")
        assert event.event_data["tx_hash"] == document.blockchain_tx_hash
        assert event.event_data["chain_id"] == 8453
        assert event.event_data["auto_triggered"] is True
        assert event.event_data["explorer_url"] == f"https://explorer.test/tx/{document.blockchain_tx_hash}"

    def test_anchor_is_idempotent(self, client, db, owner, fake_ledger):
        doc = _complete(client, db, owner)
        assert anchoring.anchor_document(doc.id) is None
        assert len(fake_ledger.sent) == 1
        assert len(_events(db, doc.id, "blockchain_verified")) == 1

    def test_unfinished_document_is_not_anchored(self, client, db, owner, fake_ledger):
        doc = make_document(db, owner)
        add_recipient(db, doc, "alice@example.com")
        assert anchoring.anchor_document(doc.id) is None
        assert fake_ledger.sent == []

    def test_unconfigured_ledger_leaves_document_pending(self, client, db, owner):
        doc = _complete(client, db, owner)
        document = _reload(db, doc.id)
        assert document.status == "completed"
        assert document.blockchain_tx_hash is None
        assert document.anchor_pending_at is not None
        assert _events(db, doc.id, "blockchain_verified") == []

    def test_ledger_failure_does_not_fail_signing(self, client, db, owner, fake_ledger):
        fake_ledger.fail_all = True
        doc = _complete(client, db, owner)
        document = _reload(db, doc.id)
        assert document.status == "completed"
        assert document.blockchain_tx_hash is None
        assert document.anchor_pending_at is not None


class TestReconciler:
    def test_requeues_pending_documents(self, client, db, owner, fake_ledger):
        fake_ledger.fail_all = True
        doc = _complete(client, db, owner)
        fake_ledger.fail_all = False

        assert anchoring.reconcile_pending_anchors(min_age_minutes=0) == 1
        document = _reload(db, doc.id)
        assert document.blockchain_tx_hash is not None
        assert document.anchor_pending_at is None
        assert anchoring.reconcile_pending_anchors(min_age_minutes=0) == 0

    def test_recent_documents_wait_for_next_pass(self, client, db, owner, fake_ledger):
        fake_ledger.fail_all = True
        _complete(client, db, owner)
        assert anchoring.reconcile_pending_anchors(min_age_minutes=60) == 0

    def test_noop_without_ledger(self, client, db, owner):
        _complete(client, db, owner)
        assert anchoring.reconcile_pending_anchors(min_age_minutes=0) == 0


class TestVerifyInscription:
    def _send(self, fake_ledger, document_hash):
        payload = create_inscription_payload(document_hash, datetime(2026, 1, 1, tzinfo=timezone.utc))
        return fake_ledger.send_data_transaction(fake_ledger.account_address, payload.encode("ascii"))

    def test_match(self, fake_ledger):
        tx = self._send(fake_ledger, "0xABC")
        result = anchoring.verify_inscription(fake_ledger, tx, "0xabc")
        assert result.verified is True
        assert result.block_number == 1001
        assert result.timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert result.inscription["type"] == "OpenProposal Inscription"

    def test_mismatch(self, fake_ledger):
        tx = self._send(fake_ledger, "0xabc")
        result = anchoring.verify_inscription(fake_ledger, tx, "0xdef")
        assert result.verified is False
        assert result.error == "Hash mismatch"

    def test_unknown_transaction(self, fake_ledger):
        result = anchoring.verify_inscription(fake_ledger, "0x" + "f" * 64, "0xabc")
        assert result.verified is False
        assert result.error == "Transaction not found"

    def test_not_an_inscription(self, fake_ledger):
        tx = fake_ledger.send_data_transaction(fake_ledger.account_address, b"plain bytes")
        result = anchoring.verify_inscription(fake_ledger, tx, "0xabc")
        assert result.verified is False
        assert result.error == "Invalid inscription format"


class TestEthscriptions:
    def _block(self, **overrides):
        block = {"id": "e1", "type": "data-uri", "payload": "data:,hello", "recipientAddress": ETH_ADDRESS, "network": "base"}
        block.update(overrides)
        return block

    def test_block_is_inscribed_and_receipts_sent(self, client, db, owner, fake_ledger, sent_emails):
        doc = _complete(client, db, owner, content=[{"id": "b1", "type": "text"}, self._block()])

        assert (ETH_ADDRESS, b"data:,hello") in fake_ledger.sent
        content = _reload(db, doc.id).content
        assert content[0] == {"id": "b1", "type": "text"}
        assert content[1]["inscriptionStatus"] == "inscribed"
        assert content[1]["inscriptionTxHash"].startswith("0x")

        (event,) = _events(db, doc.id, "ethscription_completed")
        assert event.event_data["recipient_address"] == ETH_ADDRESS
        receipts = [m["to"] for m in sent_emails if "inscription" in m["subject"]]
        assert sorted(receipts) == ["alice@example.com", "bob@example.com"]

    def test_receipt_goes_to_matching_recipient_only(self, client, db, owner, fake_ledger, sent_emails):
        doc = make_document(db, owner)
        alice = add_recipient(db, doc, "alice@example.com")
        doc.content = [self._block(recipientId=alice.id)]
        db.commit()
        client.post(f"/sign/{alice.access_token}", json=signature_body())
        receipts = [m["to"] for m in sent_emails if "inscription" in m["subject"]]
        assert receipts == ["alice@example.com"]

    def test_invalid_address_is_skipped(self, client, db, owner, fake_ledger):
        doc = _complete(client, db, owner, content=[self._block(recipientAddress="0x123")])
        assert len(fake_ledger.sent) == 1  # the anchor only
        assert "inscriptionStatus" not in _reload(db, doc.id).content[0]
        assert _events(db, doc.id, "ethscription_failed") == []

    def test_failed_block_does_not_stop_the_rest(self, client, db, owner, fake_ledger):
        other = "0x" + "c" * 40
        fake_ledger.fail_to = {ETH_ADDRESS}
        doc = _complete(
            client,
            db,
            owner,
            content=[self._block(), self._block(id="e2", recipientAddress=other)],
        )
        content = _reload(db, doc.id).content
        assert content[0]["inscriptionStatus"] == "failed"
        assert content[1]["inscriptionStatus"] == "inscribed"
        (failed,) = _events(db, doc.id, "ethscription_failed")
        assert failed.event_data["block_id"] == "e1"
        assert _reload(db, doc.id).blockchain_tx_hash is not None

    def test_unavailable_network_is_recorded(self, client, db, owner):
        doc = _complete(client, db, owner, content=[self._block(network="solana")])
        content = _reload(db, doc.id).content
        assert content[0]["inscriptionStatus"] == "failed"
        (failed,) = _events(db, doc.id, "ethscription_failed")
        assert "solana" in failed.event_data["error"]

    def test_bookkeeping_failure_on_one_block_does_not_stop_the_rest(self, db, owner, fake_ledger, monkeypatch):
        other = "0x" + "c" * 40
        doc = make_document(db, owner, status="completed", content=[self._block(), self._block(id="e2", recipientAddress=other)])
        real_inscribe = anchoring._inscribe_block

        def flaky(session, document, block):
            if block["id"] == "e1":
                raise OperationalError("UPDATE documents", {}, Exception("database is locked"))
            return real_inscribe(session, document, block)

        monkeypatch.setattr(anchoring, "_inscribe_block", flaky)
        anchoring.dispatch_ethscriptions(doc.id)

        content = _reload(db, doc.id).content
        assert "inscriptionStatus" not in content[0]
        assert content[1]["inscriptionStatus"] == "inscribed"
        assert [to for to, _ in fake_ledger.sent] == [other]

    def test_inscribed_blocks_are_not_sent_again(self, client, db, owner, fake_ledger):
        doc = _complete(client, db, owner, content=[self._block()])
        before = len(fake_ledger.sent)
        anchoring.dispatch_ethscriptions(doc.id)
        assert len(fake_ledger.sent) == before


class TestVerificationRoutes:
    def test_status_after_anchoring_verifies(self, client, db, owner, owner_headers, fake_ledger):
        doc = _complete(client, db, owner, content=[{"id": "e1", "type": "data-uri", "payload": "data:,x", "recipientAddress": ETH_ADDRESS, "network": "base"}])
        (event,) = _events(db, doc.id, "blockchain_verified")

        r = client.get(f"/documents/{doc.id}/verify", headers=owner_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["verified"] is True
        assert body["configured"] is True
        assert body["txHash"] == event.event_data["tx_hash"]
        assert body["documentHash"] == event.event_data["document_hash"]
        assert body["blockNumber"] == 1001
        assert body["chainInfo"] == {"chainId": 8453, "name": "Base", "explorerUrl": "https://explorer.test"}

    def test_status_when_unconfigured(self, client, db, owner, owner_headers):
        doc = _complete(client, db, owner)
        body = client.get(f"/documents/{doc.id}/verify", headers=owner_headers).json()
        assert body["verified"] is False
        assert body["configured"] is False
        assert body["canVerify"] is False

    def test_manual_anchor(self, client, db, owner, owner_headers, fake_ledger):
        fake_ledger.fail_all = True
        doc = _complete(client, db, owner)
        fake_ledger.fail_all = False

        r = client.post(f"/documents/{doc.id}/verify", headers=owner_headers)
        assert r.status_code == 200
        assert r.json()["txHash"] == _reload(db, doc.id).blockchain_tx_hash
        (event,) = _events(db, doc.id, "blockchain_verified")
        assert event.event_data["auto_triggered"] is False

        again = client.post(f"/documents/{doc.id}/verify", headers=owner_headers)
        assert again.status_code == 400

    def test_manual_anchor_requires_completion(self, client, db, owner, owner_headers, fake_ledger):
        doc = make_document(db, owner)
        add_recipient(db, doc, "alice@example.com")
        assert client.post(f"/documents/{doc.id}/verify", headers=owner_headers).status_code == 400

    def test_manual_anchor_without_ledger(self, client, db, owner, owner_headers):
        doc = _complete(client, db, owner)
        assert client.post(f"/documents/{doc.id}/verify", headers=owner_headers).status_code == 503
