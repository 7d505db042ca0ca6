"""Polymorphic owner resolution for rows that reference a buyer or a stylist."""

from __future__ import annotations

from dataclasses import dataclass

from migration.store.mapping import IdentifierMappingStore

OWNER_BUYER = "buyer"
OWNER_STYLIST = "stylist"


@dataclass(frozen=True)
class ResolvedOwner:
    kind: str
    legacy_id: str
    resolved_id: str


@dataclass(frozen=True)
class Unresolved:
    reason: str

    def __bool__(self) -> bool:
        return False


def resolve_owner(
    buyer_id: str | None,
    stylist_id: str | None,
    mappings: IdentifierMappingStore,
) -> ResolvedOwner | Unresolved:
    """Buyer reference first, then stylist; never guesses when neither maps."""
    if buyer_id is None and stylist_id is None:
        return Unresolved("No owner reference (buyer_id and stylist_id are both null)")
    tried = []
    for kind, legacy_id in ((OWNER_BUYER, buyer_id), (OWNER_STYLIST, stylist_id)):
        if legacy_id is None:
            continue
        resolved = mappings.get(kind, legacy_id)
        if resolved is not None:
            return ResolvedOwner(kind=kind, legacy_id=legacy_id, resolved_id=resolved)
        tried.append(f"{kind}_id={legacy_id}")
    return Unresolved(f"No migrated user for {', '.join(tried)}")
