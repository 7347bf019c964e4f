import pytest

from Playlog import models
from Playlog.identity import LookupIndex, build_index


def test_item_lookup_exact_then_case_insensitive():
    exact = models.Item(server_id=1, external_id="AbC", name="exact")
    index = LookupIndex.from_rows([], [exact])
    assert index.item_for("AbC") is exact
    assert index.item_for("abc") is exact
    assert index.item_for("ABC") is exact
    assert index.item_for("zzz") is None
    assert index.item_for(None) is None


def test_exact_match_wins_over_case_folded():
    upper = models.Item(server_id=1, external_id="ABC", name="upper")
    lower = models.Item(server_id=1, external_id="abc", name="lower")
    index = LookupIndex.from_rows([], [upper, lower])
    assert index.item_for("ABC") is upper
    assert index.item_for("abc") is lower


def test_user_lookup_is_exact_only():
    alice = models.User(server_id=1, external_id="u-1", name="alice")
    index = LookupIndex.from_rows([alice], [])
    assert index.user_for("u-1") is alice
    assert index.user_for("U-1") is None
    assert index.user_for("") is None
    assert index.user_for(None) is None


@pytest.mark.asyncio
async def test_build_index_reads_only_the_target_server(db):
    one = models.Server(name="one")
    two = models.Server(name="two")
    db.add_all([one, two])
    await db.flush()
    db.add_all(
        [
            models.User(server_id=one.id, external_id="u-1"),
            models.User(server_id=two.id, external_id="u-2"),
            models.Item(server_id=one.id, external_id="i-1", runtime_ticks=10),
            models.Item(server_id=two.id, external_id="i-2"),
        ]
    )
    await db.flush()

    index = await build_index(db, one.id)
    assert set(index.users) == {"u-1"}
    assert set(index.items) == {"i-1"}
    assert index.item_for("I-1").runtime_ticks == 10
