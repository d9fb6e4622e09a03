"""
Ownership — двухшаговая передача owner'а пула

1. owner: propose_new_owner {owner, expires_in} — предложение с TTL
2. предложенный адрес: claim_ownership {} до истечения TTL

owner может отозвать предложение (drop_ownership_proposal). Новое
предложение заменяет прежнее. Предложение хранится отдельной записью
"ownership_proposal" и удаляется при claim / drop.
"""

import logging
from typing import Final, Optional

from pydantic import BaseModel, Field

from pcl_pool.core.errors import InvalidParameters, Unauthorized
from pcl_pool.ledger.pool_ledger import PoolLedger

logger = logging.getLogger(__name__)

OWNERSHIP_PROPOSAL_KEY: Final[str] = "ownership_proposal"

# Максимальный срок предложения (14 дней)
MAX_PROPOSAL_TTL: Final[int] = 1_209_600


class OwnershipProposal(BaseModel):
    """Предложенный owner и время истечения (unix seconds)."""

    owner: str = Field(..., min_length=1)
    ttl: int = Field(..., ge=0)

    model_config = {"frozen": True}


class OwnershipTransfer:
    """Предложение / отзыв / принятие owner'а поверх storage контракта."""

    def __init__(self, ledger: PoolLedger):
        self.ledger = ledger
        self.storage = ledger.storage

    def proposal(self) -> Optional[OwnershipProposal]:
        record = self.storage.get(OWNERSHIP_PROPOSAL_KEY)
        return OwnershipProposal.model_validate(record) if record is not None else None

    def propose(self, now: int, sender: str, new_owner: str, expires_in: int) -> OwnershipProposal:
        """
        Raises:
            Unauthorized: sender не owner
            InvalidParameters: new_owner совпадает с owner или expires_in > MAX_PROPOSAL_TTL
        """
        config = self.ledger.load_config()
        if sender != config.owner:
            raise Unauthorized(sender)
        if new_owner == config.owner:
            raise InvalidParameters("New owner cannot be same", owner=new_owner)
        if expires_in > MAX_PROPOSAL_TTL:
            raise InvalidParameters(
                f"Parameter expires_in cannot be higher than {MAX_PROPOSAL_TTL}",
                expected=MAX_PROPOSAL_TTL,
                actual=expires_in,
            )

        proposal = OwnershipProposal(owner=new_owner, ttl=now + expires_in)
        self.storage.set(OWNERSHIP_PROPOSAL_KEY, proposal.model_dump(mode="json"))
        logger.info("Ownership proposed to %s until %d", new_owner, proposal.ttl)
        return proposal

    def drop(self, sender: str) -> None:
        """
        Raises:
            Unauthorized: sender не owner
        """
        config = self.ledger.load_config()
        if sender != config.owner:
            raise Unauthorized(sender)
        self.storage.remove(OWNERSHIP_PROPOSAL_KEY)
        logger.info("Ownership proposal dropped")

    def claim(self, now: int, sender: str) -> str:
        """
        Принятие предложения: owner в config меняется на sender.

        Raises:
            InvalidParameters: Предложения нет или оно истекло
            Unauthorized: sender не предложенный адрес
        """
        proposal = self.proposal()
        if proposal is None:
            raise InvalidParameters("Ownership proposal not found")
        if sender != proposal.owner:
            raise Unauthorized(sender)
        if now > proposal.ttl:
            raise InvalidParameters(
                "Ownership proposal expired", expected=proposal.ttl, actual=now
            )

        config = self.ledger.load_config()
        self.ledger.save_config(config.model_copy(update={"owner": sender}))
        self.storage.remove(OWNERSHIP_PROPOSAL_KEY)
        logger.info("Ownership claimed by %s (previous owner %s)", sender, config.owner)
        return sender
