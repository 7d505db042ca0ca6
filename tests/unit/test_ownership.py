from pathlib import Path

from migration.pipeline.ownership import OWNER_BUYER, OWNER_STYLIST, ResolvedOwner, resolve_owner
from migration.store.mapping import IdentifierMappingStore


def _store(tmp_path: Path) -> IdentifierMappingStore:
    store = IdentifierMappingStore(tmp_path)
    store.put(OWNER_BUYER, "b-1", "profile-b")
    store.put(OWNER_STYLIST, "s-1", "profile-s")
    return store


def test_buyer_reference_wins_when_both_resolve(tmp_path: Path):
    owner = resolve_owner("b-1", "s-1", _store(tmp_path))

    assert owner == ResolvedOwner(kind=OWNER_BUYER, legacy_id="b-1", resolved_id="profile-b")


def test_falls_back_to_stylist_when_buyer_unmapped(tmp_path: Path):
    owner = resolve_owner("b-404", "s-1", _store(tmp_path))

    assert isinstance(owner, ResolvedOwner)
    assert owner.kind == OWNER_STYLIST


def test_unresolved_owner_is_falsy_with_reason(tmp_path: Path):
    owner = resolve_owner("b-404", None, _store(tmp_path))
    assert not owner
    assert "buyer_id=b-404" in owner.reason

    neither = resolve_owner(None, None, _store(tmp_path))
    assert not neither
    assert "both null" in neither.reason
