from recordshop.models.record import Record
from recordshop.services.discogs.mapping import map_listing
from recordshop.services.identity_resolver import IdentityResolver

from tests.mocks.mock_gateway import make_listing


def _record(record_id, listing_id, release_id):
    return Record(
        id=record_id, title="t", artist="a", price=1.0, quantity=1,
        discogs_listing_id=listing_id, discogs_release_id=release_id,
    )


def _current(*pairs):
    payloads = [map_listing(make_listing(listing_id, release_id)) for listing_id, release_id in pairs]
    return {p.discogs_listing_id: p for p in payloads}


def test_primary_match_on_listing_id():
    existing = [_record(1, 100, 10), _record(2, 200, 20)]
    current = _current((100, 10), (200, 20), (300, 30))

    result = IdentityResolver().resolve(current, existing)

    assert [(r.id, p.discogs_listing_id) for r, p in result.matched] == [(1, 100), (2, 200)]
    assert list(result.unmatched_remote) == [300]
    assert result.unmatched_local == []
    assert result.adopted == []


def test_relisted_record_adopts_new_listing_by_release():
    """A record whose listing id changed remotely is relinked instead of deleted and recreated"""
    existing = [_record(1, 100, 10)]
    current = _current((150, 10))

    result = IdentityResolver().resolve(current, existing)

    assert result.matched == []
    assert [(r.id, p.discogs_listing_id) for r, p in result.adopted] == [(1, 150)]
    assert result.unmatched_remote == {}
    assert result.unmatched_local == []


def test_record_without_listing_id_adopts_by_release():
    existing = [_record(1, None, 10)]
    current = _current((150, 10))

    result = IdentityResolver().resolve(current, existing)

    assert [(r.id, p.discogs_listing_id) for r, p in result.adopted] == [(1, 150)]


def test_ambiguous_release_picks_lowest_listing_id():
    existing = [_record(1, None, 10)]
    current = _current((170, 10), (160, 10), (180, 10))

    result = IdentityResolver().resolve(current, existing)

    assert result.ambiguous == 1
    assert result.adopted[0][1].discogs_listing_id == 160
    assert sorted(result.unmatched_remote) == [170, 180]


def test_resolution_is_deterministic_regardless_of_input_order():
    records = [_record(2, None, 10), _record(1, None, 10)]
    current = _current((170, 10), (160, 10))

    first = IdentityResolver().resolve(current, records)
    second = IdentityResolver().resolve(dict(reversed(list(current.items()))), list(reversed(records)))

    pairs = lambda res: [(r.id, p.discogs_listing_id) for r, p in res.adopted]
    assert pairs(first) == pairs(second) == [(1, 160), (2, 170)]


def test_listing_matched_by_id_is_not_adopted_by_orphan():
    existing = [_record(1, 100, 10), _record(2, None, 10)]
    current = _current((100, 10))

    result = IdentityResolver().resolve(current, existing)

    assert [r.id for r, _ in result.matched] == [1]
    assert [r.id for r in result.unmatched_local] == [2]
    assert result.adopted == []


def test_unmatched_local_without_release_id():
    existing = [_record(1, 100, None)]

    result = IdentityResolver().resolve(_current((300, 30)), existing)

    assert [r.id for r in result.unmatched_local] == [1]
    assert list(result.unmatched_remote) == [300]


def test_partial_feed_does_not_relink_listed_records():
    existing = [_record(1, 9000, 10), _record(2, None, 20)]
    current = _current((100, 10), (200, 20))

    result = IdentityResolver().resolve(current, existing, partial_feed=True)

    assert [(r.id, p.discogs_listing_id) for r, p in result.adopted] == [(2, 200)]
    assert [r.id for r in result.unmatched_local] == [1]
    assert list(result.unmatched_remote) == [100]
