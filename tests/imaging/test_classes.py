"""Tests for PathClass interning and class-name helpers."""

import pickle

import pytest

from pixtrain.imaging.classes import (
    PathClass,
    BOUNDARY_CLASS_NAME,
    is_ignored_class,
    is_graded_intensity_class,
    is_positive_class,
    is_negative_class,
    is_positive_or_graded_intensity_class,
    non_intensity_ancestor,
    split_names,
    unique_names,
    sort_names,
    remove_names,
)

pytestmark = pytest.mark.unit


class TestPathClass:

    def test_interned(self):
        assert PathClass.get("Tumor") is PathClass.get("Tumor")

    def test_derived_from_string(self):
        derived = PathClass.get("Tumor: Positive")

        assert derived.is_derived
        assert derived.parent is PathClass.get("Tumor")
        assert derived.name == "Positive"
        assert str(derived) == "Tumor: Positive"
        assert PathClass.get("Tumor").derive("Positive") is derived

    def test_from_names_empty(self):
        assert PathClass.from_names([]) is None

    def test_default_and_custom_colors(self):
        assert PathClass.get("Tumor").color == (200, 0, 0)
        assert PathClass.get("Boundary").color == PathClass.get(BOUNDARY_CLASS_NAME).color
        # Unknown names still get a stable color
        assert PathClass.get("Fat").color == PathClass.get("Fat").color

    def test_pickle_keeps_identity(self):
        cls = PathClass.get("Stroma: Negative")
        assert pickle.loads(pickle.dumps(cls)) is cls


class TestClassPredicates:

    @pytest.mark.parametrize("name, ignored", [
        ("Tumor", False),
        ("Ignore*", True),
        ("Region*", True),
    ])
    def test_is_ignored_class(self, name, ignored):
        assert is_ignored_class(PathClass.get(name)) is ignored

    def test_missing_class_is_ignored(self):
        assert is_ignored_class(None)

    def test_intensity_predicates(self):
        assert is_graded_intensity_class(PathClass.get("2+"))
        assert is_positive_class(PathClass.get("Positive"))
        assert is_negative_class(PathClass.get("Negative"))
        assert is_positive_or_graded_intensity_class(PathClass.get("3+"))
        assert not is_positive_or_graded_intensity_class(PathClass.get("Tumor"))
        assert not is_graded_intensity_class(None)

    def test_non_intensity_ancestor(self):
        cls = PathClass.get("Tumor: Positive: 2+")
        assert non_intensity_ancestor(cls) is PathClass.get("Tumor")
        assert non_intensity_ancestor(PathClass.get("Positive")) is None


class TestNameHelpers:

    def test_split_names(self):
        assert split_names(PathClass.get("Tumor: Positive")) == ["Tumor", "Positive"]
        assert split_names(None) == []

    def test_unique_names(self):
        cls = PathClass.get("Tumor: Positive: Tumor")
        assert unique_names(cls) is PathClass.get("Tumor: Positive")

    def test_sort_names(self):
        assert sort_names(PathClass.get("Tumor: Immune cells")) is PathClass.get("Immune cells: Tumor")

    def test_remove_names(self):
        cls = PathClass.get("Tumor: Positive")
        assert remove_names(cls, ["Positive"]) is PathClass.get("Tumor")
        assert remove_names(cls, ["Stroma"]) is cls
