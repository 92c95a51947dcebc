"""Unit tests for pipeline stages over in-memory records."""

import copy
import re

import pytest

from storefront.services.pipeline import (
    ASC,
    DESC,
    MISSING,
    Avg,
    Count,
    Exists,
    FieldRef,
    Group,
    Limit,
    Lookup,
    Match,
    Ne,
    PipelineError,
    Project,
    Sort,
    Sum,
    Unwind,
    get_path,
    matches,
    required_collections,
    run_pipeline,
)


def test_get_path_walks_dicts_lists_and_indexes() -> None:
    doc = {
        "location": {"address": "1 Main St", "coordinates": [-79.3, 43.6]},
        "reviews": [{"rating": 4}, {"rating": 5}, {"text": "no rating"}],
    }
    assert get_path(doc, "location.address") == "1 Main St"
    assert get_path(doc, "location.coordinates.1") == 43.6
    assert get_path(doc, "reviews.1") == {"rating": 5}
    assert get_path(doc, "reviews.5") is MISSING
    assert get_path(doc, "reviews.rating") == [4, 5]
    assert get_path(doc, "photo") is MISSING


def test_matches_supports_literal_regex_ne_exists() -> None:
    doc = {"id": "a", "slug": "clean-eating-2", "reviews": [{}, {}]}
    assert matches(doc, {"slug": re.compile(r"^clean-eating(-\d+)?$")})
    assert matches(doc, {"id": Ne("b")})
    assert not matches(doc, {"id": Ne("a")})
    assert matches(doc, {"reviews.1": Exists()})
    assert not matches(doc, {"reviews.2": Exists()})
    assert matches(doc, {"photo": Exists(False)})
    assert not matches(doc, {"id": "b"})


def test_unwind_group_sort_counts_tags() -> None:
    stores = [{"tags": ["a", "b"]}, {"tags": ["b"]}, {"tags": []}, {"name": "no tags"}]
    rows = run_pipeline(
        stores,
        [
            Unwind("tags"),
            Group(by="tags", key_as="tag", accumulators={"count": Count()}),
            Sort(keys=(("count", DESC), ("tag", ASC))),
        ],
    )
    assert rows == [{"tag": "b", "count": 2}, {"tag": "a", "count": 1}]


def test_unwind_keeps_duplicates_within_one_document() -> None:
    rows = run_pipeline([{"tags": ["x", "x"]}], [Unwind("tags")])
    assert rows == [{"tags": "x"}, {"tags": "x"}]


def test_group_sum_and_avg() -> None:
    rows = run_pipeline(
        [{"k": "a", "v": 1}, {"k": "a", "v": 3}, {"k": "b", "v": 10}],
        [Group(by="k", accumulators={"total": Sum("v"), "mean": Avg("v")})],
    )
    assert rows == [{"_id": "a", "total": 4, "mean": 2.0}, {"_id": "b", "total": 10, "mean": 10.0}]


def test_sort_is_stable_and_puts_missing_lowest() -> None:
    rows = [{"n": 2, "i": 0}, {"i": 1}, {"n": 2, "i": 2}, {"n": None, "i": 3}, {"n": 5, "i": 4}]
    asc = run_pipeline(rows, [Sort(keys=(("n", ASC),))])
    assert [r["i"] for r in asc] == [1, 3, 0, 2, 4]
    desc = run_pipeline(rows, [Sort(keys=(("n", DESC),))])
    assert [r["i"] for r in desc] == [4, 0, 2, 1, 3]


def test_lookup_is_left_outer_one_to_many() -> None:
    stores = [{"id": "s1"}, {"id": "s2"}]
    reviews = [{"store_id": "s1", "rating": 4}, {"store_id": "s1", "rating": 2}, {"store_id": "x", "rating": 1}]
    rows = run_pipeline(
        stores,
        [Lookup(from_collection="reviews", local_field="id", foreign_field="store_id", as_field="reviews")],
        {"reviews": reviews},
    )
    assert [len(r["reviews"]) for r in rows] == [2, 0]


def test_lookup_requires_collection() -> None:
    with pytest.raises(PipelineError):
        run_pipeline([{"id": "s1"}], [Lookup("reviews", "id", "store_id", "reviews")])


def test_project_field_refs_and_list_average() -> None:
    rows = run_pipeline(
        [{"name": "X", "photo": None, "reviews": [{"rating": 4}, {"rating": 5}], "extra": 1}],
        [Project({"name": FieldRef("name"), "photo": "photo", "missing": "nope", "avg": Avg("reviews.rating")})],
    )
    assert rows == [{"name": "X", "photo": None, "avg": 4.5}]


def test_avg_of_nothing_is_none() -> None:
    rows = run_pipeline([{"reviews": []}], [Project({"avg": Avg("reviews.rating")})])
    assert rows == [{"avg": None}]


def test_limit_and_match() -> None:
    rows = run_pipeline(
        [{"n": i} for i in range(20)],
        [Match({"n": Ne(3)}), Limit(5)],
    )
    assert [r["n"] for r in rows] == [0, 1, 2, 4, 5]


def test_run_pipeline_does_not_mutate_inputs() -> None:
    stores = [{"id": "s1", "tags": ["a", "b"]}]
    reviews = [{"store_id": "s1", "rating": 5}]
    before = copy.deepcopy((stores, reviews))
    run_pipeline(stores, [Unwind("tags")])
    run_pipeline(stores, [Lookup("reviews", "id", "store_id", "reviews")], {"reviews": reviews})
    assert (stores, reviews) == before


def test_required_collections() -> None:
    stages = [Lookup("reviews", "id", "store_id", "reviews"), Limit(1)]
    assert required_collections(stages) == {"reviews"}
