"""Tests for webhook event filters."""

from datetime import timedelta

import pytest

from studentpass_webhooks.exceptions import InvalidConfigurationError
from studentpass_webhooks.filters import (
    Eq,
    FilterSet,
    Gte,
    In,
    Regex,
    compile_filters,
    matches,
)
from studentpass_webhooks.models import Event


def make_event(data=None, **metadata):
    return Event(type="entry.recorded", data=data or {}, metadata=metadata)


class TestCompileFilters:
    """Tests for parsing filter specs into typed conditions."""

    def test_empty_spec_compiles_to_empty_set(self):
        """None and {} both compile to a filter set that matches everything."""
        assert not compile_filters(None)
        assert not compile_filters({})
        assert isinstance(compile_filters({}), FilterSet)

    def test_literal_becomes_equality(self):
        """A plain value is an equality condition."""
        filter_set = compile_filters({"data.campus": "north"})

        assert filter_set.fields[0].path == "data.campus"
        assert filter_set.fields[0].conditions == (Eq("north"),)

    def test_operator_object_compiles_each_operator(self):
        """Several operators in one object each become a condition."""
        filter_set = compile_filters({"data.severity": {"$gte": 5, "$in": [5, 7, 9]}})

        conditions = filter_set.fields[0].conditions
        assert Gte(5) in conditions
        assert In((5, 7, 9)) in conditions

    def test_regex_with_options(self):
        """$regex compiles with mapped flags; g and u are ignored."""
        filter_set = compile_filters({"data.name": {"$regex": "^ada", "$options": "igu"}})

        (condition,) = filter_set.fields[0].conditions
        assert isinstance(condition, Regex)
        assert condition.test("Ada Lovelace")

    def test_plain_mapping_is_literal(self):
        """A mapping without $ keys is compared as a whole."""
        filter_set = compile_filters({"data.gate": {"name": "north", "floor": 1}})

        assert filter_set.fields[0].conditions == (Eq({"name": "north", "floor": 1}),)

    @pytest.mark.parametrize(
        "spec",
        [
            {"data.severity": {"$gte": 5, "level": 3}},
            {"data.severity": {"$between": [1, 5]}},
            {"data.campus": {"$in": "north"}},
            {"data.campus": {"$nin": 3}},
            {"data.name": {"$regex": "("}},
            {"data.name": {"$regex": "a", "$options": "q"}},
            {"data.name": {"$options": "i"}},
            {"data.name": {"$regex": 42}},
            {"": 1},
            {"data..name": 1},
        ],
    )
    def test_malformed_specs_rejected(self, spec):
        """Malformed specs fail at compile time."""
        with pytest.raises(InvalidConfigurationError) as exc_info:
            compile_filters(spec)
        assert exc_info.value.field.startswith("filters")

    def test_non_mapping_spec_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            compile_filters(["data.severity"])  # type: ignore[arg-type]


class TestMatches:
    """Tests for evaluating filters against events."""

    def test_empty_spec_matches(self):
        assert matches(make_event(), {})
        assert matches(make_event(), None)

    def test_created_timestamp_under_both_names(self):
        """The creation time is reachable as created_at and as the payload name created."""
        event = make_event()
        earlier = event.created_at - timedelta(minutes=5)

        assert matches(event, {"created_at": {"$gte": earlier}})
        assert matches(event, {"created": {"$gte": earlier}})
        assert not matches(event, {"created": {"$lt": earlier}})

    def test_severity_threshold(self):
        """$gte passes values at or above the threshold only."""
        spec = {"data.severity": {"$gte": 5}}

        assert not matches(make_event({"severity": 3}), spec)
        assert matches(make_event({"severity": 5}), spec)
        assert matches(make_event({"severity": 7}), spec)

    def test_in_matches_listed_values_only(self):
        spec = {"data.campus": {"$in": ["north", "south"]}}

        assert matches(make_event({"campus": "north"}), spec)
        assert matches(make_event({"campus": "south"}), spec)
        assert not matches(make_event({"campus": "east"}), spec)
        assert not matches(make_event({}), spec)

    def test_nin(self):
        spec = {"data.campus": {"$nin": ["north"]}}

        assert matches(make_event({"campus": "east"}), spec)
        assert not matches(make_event({"campus": "north"}), spec)

    def test_all_entries_must_pass(self):
        spec = {"data.campus": "north", "data.severity": {"$gt": 2}}

        assert matches(make_event({"campus": "north", "severity": 3}), spec)
        assert not matches(make_event({"campus": "north", "severity": 1}), spec)
        assert not matches(make_event({"campus": "south", "severity": 3}), spec)

    def test_operators_in_one_object_are_anded(self):
        spec = {"data.severity": {"$gt": 2, "$lt": 8}}

        assert matches(make_event({"severity": 5}), spec)
        assert not matches(make_event({"severity": 9}), spec)
        assert not matches(make_event({"severity": 1}), spec)

    def test_ne_and_lte(self):
        assert matches(make_event({"status": "active"}), {"data.status": {"$ne": "expired"}})
        assert matches(make_event({"count": 3}), {"data.count": {"$lte": 3}})
        assert not matches(make_event({"count": 4}), {"data.count": {"$lte": 3}})

    def test_regex_search(self):
        """$regex uses search semantics on the string form of the value."""
        spec = {"data.device": {"$regex": "gate-\\d+"}}

        assert matches(make_event({"device": "north gate-12"}), spec)
        assert matches(make_event({"device": "gate-7"}), spec)
        assert not matches(make_event({"device": "door-3"}), spec)

    def test_regex_case_insensitive(self):
        spec = {"data.name": {"$regex": "^ada", "$options": "i"}}

        assert matches(make_event({"name": "ADA"}), spec)
        assert not matches(make_event({"name": "Grace"}), spec)

    def test_absent_field_semantics(self):
        """Absent values compare as None for equality and fail ordered operators."""
        event = make_event({})

        assert matches(event, {"data.severity": {"$eq": None}})
        assert matches(event, {"data.severity": {"$in": [None, 1]}})
        assert matches(event, {"data.severity": {"$ne": 5}})
        assert matches(event, {"data.severity": {"$nin": [5]}})
        assert not matches(event, {"data.severity": 5})
        assert not matches(event, {"data.severity": {"$gt": 0}})
        assert not matches(event, {"data.severity": {"$lt": 100}})
        assert not matches(event, {"data.name": {"$regex": ".*"}})

    def test_incomparable_types_do_not_match(self):
        """Ordered comparison between a string and a number fails quietly."""
        assert not matches(make_event({"severity": "high"}), {"data.severity": {"$gte": 5}})

    def test_booleans_are_not_integers(self):
        assert not matches(make_event({"flag": True}), {"data.flag": 1})
        assert matches(make_event({"flag": True}), {"data.flag": True})
        assert not matches(make_event({"count": 1}), {"data.count": {"$in": [True]}})

    def test_metadata_and_type_paths(self):
        event = make_event({"x": 1}, source="student-pass-system")

        assert matches(event, {"metadata.source": "student-pass-system"})
        assert matches(event, {"type": {"$regex": "^entry\\."}})

    def test_list_index_paths(self):
        event = make_event({"students": [{"id": "S-1"}, {"id": "S-2"}]})

        assert matches(event, {"data.students.1.id": "S-2"})
        assert not matches(event, {"data.students.5.id": {"$ne": None}})

    def test_compiled_filter_set_accepted(self):
        filter_set = compile_filters({"data.severity": {"$gte": 5}})

        assert matches(make_event({"severity": 6}), filter_set)
        assert filter_set.matches(make_event({"severity": 6}))
