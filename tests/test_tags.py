import pytest

from kotatsu_core.errors import LookupFailure, TagNotFound
from kotatsu_core.tags import (
    ForumTag,
    applied_tags_from_payload,
    available_tags_from_payload,
    find_status_tag,
    managed_tag_ids,
    reconcile_applied_tags,
)

SOLVED = ForumTag(1, ".Solved")
DUPLICATE = ForumTag(2, ".Duplicate")
BUG = ForumTag(3, "bug")
HELP = ForumTag(4, "community-help")
CATALOG = (SOLVED, DUPLICATE, BUG, HELP)


def test_replaces_other_managed_tag():
    result = reconcile_applied_tags(CATALOG, SOLVED.id, [DUPLICATE.id, BUG.id])
    assert result == [BUG.id, SOLVED.id]


def test_reapplying_same_tag_is_noop_on_membership():
    result = reconcile_applied_tags(CATALOG, SOLVED.id, [SOLVED.id, HELP.id])
    assert sorted(result) == sorted([SOLVED.id, HELP.id])
    assert result.count(SOLVED.id) == 1


def test_unmanaged_order_and_duplicates_preserved():
    applied = [HELP.id, DUPLICATE.id, BUG.id, HELP.id, SOLVED.id]
    result = reconcile_applied_tags(CATALOG, DUPLICATE.id, applied)
    managed = managed_tag_ids(CATALOG)
    assert [t for t in result if t not in managed] == [HELP.id, BUG.id, HELP.id]
    assert [t for t in result if t in managed] == [DUPLICATE.id]


def test_empty_applied_list():
    assert reconcile_applied_tags(CATALOG, SOLVED.id, []) == [SOLVED.id]


def test_unknown_ids_are_treated_as_unmanaged():
    assert reconcile_applied_tags(CATALOG, SOLVED.id, [999]) == [999, SOLVED.id]


def test_find_status_tag_case_insensitive():
    assert find_status_tag(CATALOG, ".solved") == SOLVED


def test_find_status_tag_missing():
    with pytest.raises(TagNotFound) as err:
        find_status_tag(CATALOG, ".Known issue")
    assert err.value.tag_name == ".Known issue"


def test_payload_top_level_shape():
    forum = {"id": "10", "available_tags": [{"id": "1", "name": ".Solved"}, {"id": "3", "name": "bug"}]}
    thread = {"id": "20", "applied_tags": ["3", "1"]}
    assert available_tags_from_payload(forum) == (ForumTag(1, ".Solved"), ForumTag(3, "bug"))
    assert applied_tags_from_payload(thread) == (3, 1)


def test_payload_nested_shape_and_tag_objects():
    forum = {"channel": {"available_tags": [{"id": 1, "name": ".Solved"}]}}
    thread = {"channel": {"applied_tags": [{"id": "1", "name": ".Solved"}, {"id": 3}]}}
    assert available_tags_from_payload(forum) == (ForumTag(1, ".Solved"),)
    assert applied_tags_from_payload(thread) == (1, 3)


def test_payload_without_tags_is_empty():
    assert available_tags_from_payload({"id": "1"}) == ()
    assert applied_tags_from_payload({"id": "1", "applied_tags": None}) == ()


def test_malformed_payload_raises_lookup_failure():
    with pytest.raises(LookupFailure):
        applied_tags_from_payload({"applied_tags": "1,2"})
    with pytest.raises(LookupFailure):
        applied_tags_from_payload({"applied_tags": ["abc"]})
    with pytest.raises(LookupFailure):
        available_tags_from_payload({"available_tags": ["1"]})
