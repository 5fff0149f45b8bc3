"""EVM ledger access (web3.py): zero-value data transactions, receipts, lookups.

One client per network. The document anchor goes to the service account's own
address on the configured chain; ethscriptions go to a recipient address on the
network the block selects.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any

from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from app.config import get_settings

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

# One lock per (chain_id, account): nonce lookup, signing and broadcast must not interleave
_send_locks: dict[tuple[int, str], threading.Lock] = {}
_send_locks_guard = threading.Lock()


def _send_lock(chain_id: int, address: str) -> threading.Lock:
    key = (chain_id, address.lower())
    with _send_locks_guard:
        lock = _send_locks.get(key)
        if lock is None:
            lock = _send_locks[key] = threading.Lock()
        return lock


class LedgerError(Exception):
    """Submission, confirmation or lookup failed."""


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    rpc_url: str
    explorer_tx_url: str  # format string with {tx_hash}


# Public defaults; settings.ethscription_rpc_<name> overrides the RPC endpoint
NETWORKS: dict[str, NetworkConfig] = {
    "ethereum": NetworkConfig("Ethereum", 1, "https://cloudflare-eth.com", "https://etherscan.io/tx/{tx_hash}"),
    "base": NetworkConfig("Base", 8453, "https://mainnet.base.org", "https://basescan.org/tx/{tx_hash}"),
    "arbitrum": NetworkConfig("Arbitrum One", 42161, "https://arb1.arbitrum.io/rpc", "https://arbiscan.io/tx/{tx_hash}"),
    "optimism": NetworkConfig("OP Mainnet", 10, "https://mainnet.optimism.io", "https://optimistic.etherscan.io/tx/{tx_hash}"),
    "polygon": NetworkConfig("Polygon", 137, "https://polygon-rpc.com", "https://polygonscan.com/tx/{tx_hash}"),
}


def is_valid_address(address: str | None) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def anchor_network() -> NetworkConfig:
    s = get_settings()
    explorer = s.blockchain_explorer_url.rstrip("/") + "/tx/{tx_hash}"
    return NetworkConfig(s.blockchain_chain_name, s.blockchain_chain_id, s.blockchain_rpc_url, explorer)


def ethscription_network(network: str | None) -> NetworkConfig | None:
    key = (network or "").strip().lower()
    base = NETWORKS.get(key)
    if not base:
        return None
    override = (getattr(get_settings(), f"ethscription_rpc_{key}", "") or "").strip()
    if override:
        return NetworkConfig(base.name, base.chain_id, override, base.explorer_tx_url)
    return base


def is_ledger_configured() -> bool:
    return bool(get_settings().blockchain_private_key)


class LedgerClient:
    def __init__(self, network: NetworkConfig, private_key: str, request_timeout: float = 30.0):
        self.network = network
        self.w3 = Web3(Web3.HTTPProvider(network.rpc_url, request_kwargs={"timeout": request_timeout}))
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        self._account = self.w3.eth.account.from_key(key)

    @property
    def account_address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    def explorer_url(self, tx_hash: str) -> str:
        return self.network.explorer_tx_url.format(tx_hash=tx_hash)

    def send_data_transaction(self, to: str, data: bytes) -> str:
        """Sign and broadcast a zero-value transaction carrying `data`. Returns the 0x tx hash."""
        with _send_lock(self.network.chain_id, self._account.address):
            return self._send_locked(to, data)

    def _send_locked(self, to: str, data: bytes) -> str:
        try:
            to_addr = Web3.to_checksum_address(to)
            tx: dict[str, Any] = {
                "from": self._account.address,
                "to": to_addr,
                "value": 0,
                "data": Web3.to_hex(data),
                "nonce": self.w3.eth.get_transaction_count(self._account.address, "pending"),
                "chainId": self.network.chain_id,
            }
            tx["gas"] = self.w3.eth.estimate_gas(tx)
            tx["gasPrice"] = self.w3.eth.gas_price
            signed = self._account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise LedgerError(f"send failed: {type(e).__name__}: {e}") from e
        return Web3.to_hex(tx_hash)

    def wait_for_confirmation(self, tx_hash: str, timeout: float) -> dict[str, Any]:
        """Block until one confirmation or `timeout` seconds. Reverted transactions raise."""
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout, poll_latency=2)
        except TimeExhausted as e:
            raise LedgerError(f"no confirmation for {tx_hash} within {timeout}s") from e
        except Exception as e:
            raise LedgerError(f"receipt lookup failed: {type(e).__name__}: {e}") from e
        if receipt.get("status") != 1:
            raise LedgerError(f"transaction {tx_hash} failed on chain")
        return dict(receipt)

    def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            return dict(self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None
        except Exception as e:
            raise LedgerError(f"transaction lookup failed: {type(e).__name__}: {e}") from e

    def get_block(self, block_number: int) -> dict[str, Any]:
        try:
            return dict(self.w3.eth.get_block(block_number))
        except Exception as e:
            raise LedgerError(f"block lookup failed: {type(e).__name__}: {e}") from e


def get_ledger_client(network: str | None = None) -> LedgerClient | None:
    """Client for the anchoring chain (network=None) or an ethscription network.
    None when no service key is configured or the network is unknown."""
    s = get_settings()
    if not s.blockchain_private_key:
        return None
    config = anchor_network() if network is None else ethscription_network(network)
    if config is None:
        return None
    return LedgerClient(config, s.blockchain_private_key)
