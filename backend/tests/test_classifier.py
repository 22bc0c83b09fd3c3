import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from lessonforge.models.items import TrackedItem
from lessonforge.services.classifier import classify

from fakes import fill_blank, matching, mc, oq, sc


def test_partitions_by_family_and_keeps_order():
    items = [oq(0), sc(1), matching(2), mc(3), fill_blank(4), sc(5)]
    selection, open_items = classify(items)
    assert selection == [items[1], items[3], items[5]]
    assert open_items == [items[0], items[2], items[4]]


def test_unknown_and_missing_types_land_in_open_family():
    odd = [{"type": "essay", "question": "Write about spring"}, {"question": "no type at all"}]
    selection, open_items = classify(odd)
    assert selection == []
    assert open_items == odd


def test_every_item_ends_up_in_exactly_one_family():
    items = [sc(i) if i % 3 == 0 else oq(i) for i in range(10)]
    selection, open_items = classify(items)
    assert len(selection) + len(open_items) == len(items)
    assert not [x for x in selection if x in open_items]


def test_idempotent_on_its_own_output():
    selection, open_items = classify([sc(0), oq(1), mc(2), matching(3)])
    assert classify(selection) == (selection, [])
    assert classify(open_items) == ([], open_items)


def test_works_on_tracked_items():
    tracked = [TrackedItem(7, oq(0)), TrackedItem(8, mc(1))]
    selection, open_items = classify(tracked)
    assert [t.ordinal for t in selection] == [8]
    assert [t.ordinal for t in open_items] == [7]


def test_empty_input():
    assert classify([]) == ([], [])
