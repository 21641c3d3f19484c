"""
Tests for AssetDiffEngine and AssetChangeSet.
"""

import pytest

from order_assets.core.sync.diff_service import AssetChangeSet, AssetDiffEngine
from tests.conftest import make_config, upload_key


@pytest.fixture
def engine():
    return AssetDiffEngine()


class TestDiff:

    def test_logo_swap(self, engine):
        old = make_config(logos=["A.png", "B.png"])
        new = make_config(logos=["B.png", "C.png"])

        change_set = engine.diff(old, new)

        assert change_set.added == [upload_key("C.png")]
        assert change_set.removed == [upload_key("A.png")]
        assert change_set.retained == [upload_key("B.png")]
        assert change_set.has_changes is True

    def test_unchanged_configuration(self, engine):
        config = make_config(logos=["A.png"], uploads=["B.png"])
        change_set = engine.diff(config, dict(config, jacketColor="red"))
        assert change_set.has_changes is False
        assert change_set.retained == [upload_key("A.png"), upload_key("B.png")]

    def test_absent_old_snapshot(self, engine):
        change_set = engine.diff(None, make_config(logos=["A.png"]))
        assert change_set.added == [upload_key("A.png")]
        assert change_set.removed == []

    def test_both_absent(self, engine):
        change_set = engine.diff(None, {})
        assert change_set.to_dict() == {"added": [], "removed": [], "retained": [], "has_changes": False}

    def test_reordering_is_not_a_change(self, engine):
        old = make_config(logos=["A.png", "B.png"])
        new = make_config(logos=["B.png", "A.png"])
        assert engine.diff(old, new).has_changes is False


class TestChangeSetInvariants:

    @pytest.mark.parametrize("old_refs,new_refs", [
        (set(), set()),
        ({"a"}, set()),
        (set(), {"a"}),
        ({"a", "b"}, {"b", "c"}),
        ({"a", "b", "c"}, {"a", "b", "c"}),
    ])
    def test_partition(self, old_refs, new_refs):
        change_set = AssetChangeSet.from_sets(old_refs, new_refs)

        assert not set(change_set.added) & set(change_set.removed)
        assert set(change_set.retained) == old_refs & new_refs
        assert change_set.has_changes == bool(change_set.added or change_set.removed)
        assert set(change_set.added) | set(change_set.retained) == new_refs
        assert set(change_set.removed) | set(change_set.retained) == old_refs
