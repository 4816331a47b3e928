from partsync.journal import MutationJournal, MutationKind, diff_collections
from partsync.models import Part


def _p(pid, **kw):
    return Part(id=pid, name=kw.pop("name", pid), **kw)


def test_sequence_numbers_increase():
    j = MutationJournal()
    a = j.record(MutationKind.ADD, _p("A"), now=1.0)
    b = j.record(MutationKind.SELL, _p("B"), now=2.0)
    assert b.seq > a.seq
    assert len(j) == 2


def test_confirm_matches_effect_per_kind():
    j = MutationJournal()
    j.record(MutationKind.ADD, _p("A"), now=0)
    j.record(MutationKind.SELL, _p("B").mark_sold(5), now=0)
    j.record(MutationKind.DELETE, _p("C"), now=0)
    j.record(MutationKind.RETURN, _p("D"), now=0)

    confirmed = j.confirm(inventory=[_p("A"), _p("C")], sales=[_p("B")])

    assert confirmed == 2
    assert [e.part.id for e in j.pending(now=1)] == ["C", "D"]


def test_pending_drops_expired_entries():
    j = MutationJournal(ttl=10)
    j.record(MutationKind.ADD, _p("old"), now=0)
    j.record(MutationKind.ADD, _p("new"), now=9)
    assert [e.part.id for e in j.pending(now=12)] == ["new"]
    assert j.prune(now=12) == 1
    assert len(j) == 1


def test_replay_applies_pending_over_snapshot():
    j = MutationJournal()
    j.record(MutationKind.SELL, _p("A").mark_sold(40), now=0)
    j.record(MutationKind.ADD, _p("N"), now=0)
    j.record(MutationKind.DELETE, _p("B"), now=0)

    inv, sold = j.replay([_p("A"), _p("B"), _p("C")], [], now=1)

    assert [p.id for p in inv] == ["N", "C"]
    assert [p.id for p in sold] == ["A"]
    assert sold[0].final_price == 40


def test_replay_skips_confirmed_entries():
    j = MutationJournal()
    j.record(MutationKind.DELETE, _p("B"), now=0)
    j.confirm(inventory=[], sales=[])
    inv, _ = j.replay([_p("B")], [], now=1)
    assert [p.id for p in inv] == ["B"]


def test_diff_collections():
    before = [_p("A", suggested_price=10), _p("B"), _p("C")]
    after = [_p("A", suggested_price=12), _p("C"), _p("D")]

    added, removed, changed = diff_collections(before, after)

    assert [p.id for p in added] == ["D"]
    assert [p.id for p in removed] == ["B"]
    assert len(changed) == 1
    old, new = changed[0]
    assert (old.suggested_price, new.suggested_price) == (10, 12)


def test_newer_entry_supersedes_older_for_same_id():
    j = MutationJournal()
    j.record(MutationKind.ADD, _p("N"), now=0)
    j.record(MutationKind.DELETE, _p("N"), now=1)

    assert [(e.kind, e.part.id) for e in j.entries] == [(MutationKind.DELETE, "N")]
    assert j.confirm(inventory=[_p("A")], sales=[]) == 1
    inv, sold = j.replay([_p("A")], [], now=2)
    assert [p.id for p in inv] == ["A"]
    assert sold == []
    j.prune(now=2)
    assert len(j) == 0


def test_sell_return_sell_keeps_only_the_last_sale():
    j = MutationJournal()
    j.record(MutationKind.SELL, _p("X").mark_sold(10), now=0)
    j.record(MutationKind.RETURN, _p("X"), now=1)
    j.record(MutationKind.SELL, _p("X").mark_sold(20), now=2)

    pending = j.pending(now=3)
    assert [(e.kind, e.part.final_price) for e in pending] == [(MutationKind.SELL, 20)]

    inv, sold = j.replay([_p("X"), _p("B")], [], now=3)
    assert [p.id for p in inv] == ["B"]
    assert [(p.id, p.final_price) for p in sold] == [("X", 20)]
