"""Solana RPC client wrapper for on-chain vote attestation"""
import json
from typing import Optional

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.models import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from app.config import get_settings
from app.models.governance import GovernanceVote

logger = structlog.get_logger()
settings = get_settings()

MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")


def build_vote_memo(vote: GovernanceVote) -> bytes:
    """Memo payload identifying a vote; the chain only ever sees ids and weight"""
    return json.dumps(
        {
            "type": "perpetua_vote",
            "vote": vote.id,
            "proposal": vote.proposal_id,
            "option": vote.option_id,
            "power": vote.voting_power,
        },
        separators=(",", ":"),
        sort_keys=True,
    ).encode()


class SolanaClient:
    """Async Solana RPC client that countersigns votes with a memo transaction"""

    def __init__(self, rpc_url: Optional[str] = None, attestor_keypair: Optional[str] = None):
        self.rpc_url = rpc_url or settings.solana_rpc_url
        self._client: Optional[AsyncClient] = None

        secret = attestor_keypair or settings.vote_attestor_keypair
        self.attestor: Optional[Keypair] = Keypair.from_base58_string(secret) if secret else None

    async def connect(self) -> None:
        """Establish connection to Solana RPC"""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=Confirmed)
            logger.info("Connected to Solana RPC", url=self.rpc_url)

    async def disconnect(self) -> None:
        """Close RPC connection"""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Disconnected from Solana RPC")

    @property
    def client(self) -> AsyncClient:
        """Get the async client, raise if not connected"""
        if self._client is None:
            raise RuntimeError("Solana client not connected. Call connect() first.")
        return self._client

    async def get_slot(self) -> int:
        """Get current slot"""
        response = await self.client.get_slot(commitment=Confirmed)
        return response.value

    def build_memo_instruction(self, memo: bytes) -> Instruction:
        """Memo instruction signed by the attestor key"""
        return Instruction(
            MEMO_PROGRAM_ID,
            memo,
            [AccountMeta(pubkey=self.attestor.pubkey(), is_signer=True, is_writable=True)],
        )

    async def attest_vote(self, vote: GovernanceVote) -> Optional[str]:
        """Send a memo transaction for a committed vote and return its signature.

        Returns None when no attestor key is configured.
        """
        if self.attestor is None:
            return None

        blockhash_resp = await self.client.get_latest_blockhash(commitment=Confirmed)
        instruction = self.build_memo_instruction(build_vote_memo(vote))
        message = Message([instruction], self.attestor.pubkey())
        tx = Transaction([self.attestor], message, blockhash_resp.value.blockhash)

        response = await self.client.send_transaction(
            tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        )
        signature = str(response.value)
        logger.info("Submitted vote attestation", vote_id=vote.id, signature=signature)
        return signature


# Singleton instance
_solana_client: Optional[SolanaClient] = None


async def get_solana_client() -> SolanaClient:
    """Get or create Solana client singleton"""
    global _solana_client
    if _solana_client is None:
        _solana_client = SolanaClient()
        await _solana_client.connect()
    return _solana_client


async def close_solana_client() -> None:
    """Close Solana client singleton"""
    global _solana_client
    if _solana_client is not None:
        await _solana_client.disconnect()
        _solana_client = None
