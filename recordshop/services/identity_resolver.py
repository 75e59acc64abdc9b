"""
Deterministic mapping of remote Discogs listings onto local records.

Primary match is listing id equality. Records left unmatched (created before a
listing id was known, or whose listing was relisted under a new id) may adopt an
unmatched remote listing with the same release id. When several listings share
the release id the lowest listing id wins, so repeated runs over the same input
always produce the same pairing.

On a partial feed only records that never had a listing id may adopt: a record
whose listing is missing could simply be on a page that was not fetched.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from recordshop.models.record import Record
from recordshop.schemas.sync import RecordPayload

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    matched: List[Tuple[Record, RecordPayload]] = field(default_factory=list)
    adopted: List[Tuple[Record, RecordPayload]] = field(default_factory=list)
    unmatched_remote: Dict[int, RecordPayload] = field(default_factory=dict)
    unmatched_local: List[Record] = field(default_factory=list)
    ambiguous: int = 0


class IdentityResolver:

    def resolve(
        self,
        current: Dict[int, RecordPayload],
        existing: Iterable[Record],
        partial_feed: bool = False,
    ) -> Resolution:
        """
        Pair remote payloads (keyed by listing id) with local FOR_SALE records.

        Args:
            partial_feed: the feed stopped early; records with a listing id are not
                relinked by release id

        Returns:
            Resolution: primary matches, fallback adoptions, remote listings with no
            local counterpart (create set) and local records with no remote
            counterpart (delete candidates)
        """
        result = Resolution()
        remaining = dict(current)
        orphans: List[Record] = []

        for record in sorted(existing, key=lambda r: r.id):
            listing_id = record.discogs_listing_id
            if listing_id is not None and listing_id in remaining:
                result.matched.append((record, remaining.pop(listing_id)))
            else:
                orphans.append(record)

        by_release: Dict[int, List[int]] = {}
        for listing_id, payload in remaining.items():
            by_release.setdefault(payload.discogs_release_id, []).append(listing_id)

        for record in orphans:
            if partial_feed and record.discogs_listing_id is not None:
                result.unmatched_local.append(record)
                continue

            candidates = sorted(
                lid for lid in by_release.get(record.discogs_release_id, []) if lid in remaining
            ) if record.discogs_release_id is not None else []

            if not candidates:
                result.unmatched_local.append(record)
                continue

            chosen = candidates[0]
            if len(candidates) > 1:
                result.ambiguous += 1
                logger.warning(
                    f"Ambiguous release match for record {record.id} (release {record.discogs_release_id}): "
                    f"candidates {candidates}, adopting lowest listing id {chosen}"
                )
            logger.info(
                f"Record {record.id} adopts listing {chosen} "
                f"(was {record.discogs_listing_id}) via release {record.discogs_release_id}"
            )
            result.adopted.append((record, remaining.pop(chosen)))

        result.unmatched_remote = remaining
        return result
