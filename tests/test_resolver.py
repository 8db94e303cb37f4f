"""Token resolution: batch id, event id, then the legacy fallbacks."""
import pytest

from herbtrace.errors import NotFoundError
from herbtrace.services.ledger.resolver import (
    MATCH_BATCH,
    MATCH_EVENT,
    MATCH_PARENT,
    MATCH_SUBSTRING,
    Resolver,
)
from tests.conftest import collection_draft, quality_draft


class TestDirectMatches:

    def test_batch_id(self, resolver, full_batch):
        r = resolver.resolve("B-1")
        assert r.batch.batchId == "B-1"
        assert r.matched_by == MATCH_BATCH
        assert [e.eventId for e in r.events] == [e.eventId for e in full_batch]

    def test_event_id(self, resolver, full_batch):
        q = full_batch[1]
        r = resolver.resolve(q.eventId)
        assert r.batch.batchId == "B-1"
        assert r.matched_by == MATCH_EVENT
        assert r.matched_event_id == q.eventId

    def test_batch_id_wins_over_event_id(self, ledger, resolver):
        # an event whose id happens to equal another batch's id
        ledger.append(collection_draft("SHARED"))
        ledger.append(collection_draft("OTHER", eventId="SHARED"))
        assert resolver.resolve("SHARED").batch.batchId == "SHARED"

    def test_surrounding_whitespace_is_ignored(self, resolver, full_batch):
        assert resolver.resolve("  B-1\n").batch.batchId == "B-1"


class TestMisses:

    def test_unknown_batch(self, resolver, full_batch):
        with pytest.raises(NotFoundError):
            resolver.resolve("HERB-999")

    @pytest.mark.parametrize("token", ["", "   ", None])
    def test_blank_token(self, resolver, token):
        with pytest.raises(NotFoundError):
            resolver.resolve(token)

    def test_resolving_never_changes_the_ledger(self, ledger, resolver, full_batch):
        before = [e.eventId for e in ledger.iter_events()]
        for token in ("B-1", full_batch[0].eventId, "HERB-999", "COLLECTION"):
            try:
                resolver.resolve(token)
            except NotFoundError:
                pass
        assert [e.eventId for e in ledger.iter_events()] == before


class TestLegacyFallback:

    def test_parent_event_id(self, ledger, resolver):
        ledger.append(collection_draft("B-7", eventId="EVT-700", parentEventId="LABEL-OLD-7"))
        r = resolver.resolve("LABEL-OLD-7")
        assert r.batch.batchId == "B-7"
        assert r.matched_by == MATCH_PARENT
        assert r.matched_event_id == "EVT-700"

    def test_substring_of_event_id(self, ledger, resolver):
        ledger.append(collection_draft("B-9", eventId="EVT-42-A"))
        r = resolver.resolve("EVT-42")
        assert r.batch.batchId == "B-9"
        assert r.matched_by == MATCH_SUBSTRING

    def test_substring_can_be_switched_off(self, ledger):
        ledger.append(collection_draft("B-9", eventId="EVT-42-A"))
        with pytest.raises(NotFoundError):
            Resolver(ledger, substring_match=False).resolve("EVT-42")

    def test_parent_match_still_works_without_substring(self, ledger):
        ledger.append(collection_draft("B-7", eventId="EVT-700", parentEventId="LABEL-OLD-7"))
        r = Resolver(ledger, substring_match=False).resolve("LABEL-OLD-7")
        assert r.matched_by == MATCH_PARENT

    def test_earliest_substring_hit_wins(self, ledger, resolver):
        ledger.append(collection_draft("P", eventId="X-100"))
        ledger.append(collection_draft("Q", eventId="X-1000"))
        assert resolver.resolve("X-10").batch.batchId == "P"

    def test_earlier_substring_beats_later_parent(self, ledger, resolver):
        ledger.append(collection_draft("P", eventId="TAG-55-first"))
        ledger.append(collection_draft("Q", eventId="EVT-Q", parentEventId="TAG-55"))
        r = resolver.resolve("TAG-55")
        assert r.batch.batchId == "P"
        assert r.matched_by == MATCH_SUBSTRING

    def test_earlier_parent_beats_later_substring(self, ledger, resolver):
        ledger.append(collection_draft("P", eventId="EVT-P", parentEventId="TAG-55"))
        ledger.append(collection_draft("Q", eventId="TAG-55-later"))
        r = resolver.resolve("TAG-55")
        assert r.batch.batchId == "P"
        assert r.matched_by == MATCH_PARENT

    def test_resolve_batch_id(self, ledger, resolver):
        c = ledger.append(collection_draft("B-3"))
        ledger.append(quality_draft("B-3", eventId="Q-3"))
        assert resolver.resolve_batch_id("Q-3") == "B-3"
        assert resolver.resolve_batch_id(c.eventId) == "B-3"


def test_to_dict_uses_wire_names(resolver, full_batch):
    d = resolver.resolve("B-1").to_dict()
    assert d["batch"]["batchId"] == "B-1"
    assert d["matchedBy"] == MATCH_BATCH
    processing = d["events"][2]["payload"]
    assert processing["yield"] == 425
    assert "yield_" not in processing
