"""Payee aliases: learned bank description patterns mapped to payees."""

from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..parsers.bank_patterns import normalize_pattern
from ..storage.tables import PayeeAlias, new_id, utcnow

logger = logging.getLogger(__name__)


class AliasResolver:
    """
    Exact-pattern lookup and learning of payee aliases.

    Patterns are produced by ``normalize_pattern``; a description that reduces
    to an empty pattern never resolves and is never learned.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_alias(self, user_id: str, description: str) -> Optional[PayeeAlias]:
        pattern = normalize_pattern(description)
        if not pattern:
            return None
        stmt = select(PayeeAlias).where(
            PayeeAlias.user_id == user_id, PayeeAlias.normalized_pattern == pattern
        )
        return self.session.scalars(stmt).first()

    def resolve(self, user_id: str, description: str) -> Optional[str]:
        """Payee id learned for this description, or None."""
        alias = self.find_alias(user_id, description)
        return alias.payee_id if alias else None

    def learn(self, user_id: str, payee_id: str, description: str) -> Optional[PayeeAlias]:
        """
        Record that ``description`` belongs to ``payee_id``.

        An existing pattern is re-pointed to the payee and its counter bumped;
        a new one starts at one match.
        """
        pattern = normalize_pattern(description)
        if not pattern:
            return None

        alias = self.find_alias(user_id, description)
        if alias:
            alias.payee_id = payee_id
            alias.times_matched += 1
            alias.last_matched_at = utcnow()
            logger.debug(f"Alias '{pattern}' matched {alias.times_matched} times")
        else:
            alias = PayeeAlias(
                id=new_id(),
                user_id=user_id,
                payee_id=payee_id,
                bank_description=description,
                normalized_pattern=pattern,
                source="import_learn",
                times_matched=1,
                last_matched_at=utcnow(),
            )
            self.session.add(alias)
            logger.debug(f"Learned alias '{pattern}' -> payee {payee_id}")

        self.session.flush()
        return alias

    def aliases_for_payee(self, user_id: str, payee_id: str) -> list[PayeeAlias]:
        stmt = (
            select(PayeeAlias)
            .where(PayeeAlias.user_id == user_id, PayeeAlias.payee_id == payee_id)
            .order_by(PayeeAlias.times_matched.desc(), PayeeAlias.id)
        )
        return list(self.session.scalars(stmt).all())
