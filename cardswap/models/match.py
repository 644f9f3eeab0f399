from dataclasses import dataclass, field


@dataclass(frozen=True)
class Match:
    """
    A pairing of two users' cards produced by the matching engine.

    Either a single-card pairing (user1_card_id / user2_card_id) or a bundle
    pairing (user1_card_ids / user2_card_ids). Party order carries no meaning:
    either user may propose.

    Attributes:
        id: Match identifier
        user1_id: First party
        user2_id: Second party
        user1_card_id: Card offered by user1 (single pairing)
        user2_card_id: Card offered by user2 (single pairing)
        user1_card_ids: Cards offered by user1 (bundle pairing)
        user2_card_ids: Cards offered by user2 (bundle pairing)
        is_bundle: Explicit bundle flag from the matcher
        match_score: Informational score from the matcher
        value_difference: Informational value gap between the two sides
    """

    id: str
    user1_id: str
    user2_id: str | None
    user1_card_id: str | None = None
    user2_card_id: str | None = None
    user1_card_ids: tuple[str, ...] = field(default_factory=tuple)
    user2_card_ids: tuple[str, ...] = field(default_factory=tuple)
    is_bundle: bool = False
    match_score: float | None = None
    value_difference: float | None = None

    @property
    def bundled(self) -> bool:
        """True if this match trades more than one card on either side."""
        return (
            self.is_bundle or len(self.user1_card_ids) > 1 or len(self.user2_card_ids) > 1
        )

    def structural_problem(self) -> str | None:
        """
        Describe why this match cannot back a proposal, or None if it can.

        Only checks the record itself; card existence is checked by the caller.
        """
        if not self.user1_id or not self.user2_id:
            return "missing party"
        if self.user1_id == self.user2_id:
            return "both sides belong to the same user"
        has_single = bool(self.user1_card_id or self.user2_card_id)
        has_bundle = bool(self.user1_card_ids or self.user2_card_ids)
        if has_single and has_bundle:
            return "both single and bundle cards are set"
        if self.bundled:
            if not self.user1_card_ids or not self.user2_card_ids:
                return "bundle without cards on both sides"
        elif not self.user1_card_id or not self.user2_card_id:
            return "missing card reference"
        return None

    def card_ids(self) -> set[str]:
        """All card ids this match references."""
        if self.bundled:
            return set(self.user1_card_ids) | set(self.user2_card_ids)
        return {cid for cid in (self.user1_card_id, self.user2_card_id) if cid}

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def counterparty_of(self, user_id: str) -> str:
        """The other party of the match."""
        if user_id == self.user1_id and self.user2_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        raise ValueError(f"{user_id} is not a party to match {self.id}")
