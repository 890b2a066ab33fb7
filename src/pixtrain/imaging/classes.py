"""Annotation classes and naming helpers.

Classes are interned: ``PathClass.get("Tumor")`` always returns the same
object, so they can be compared with ``is`` and used as dict keys. A
derived class ("Tumor: Positive") keeps a link to its parent.
"""

import hashlib
import threading
from typing import Callable, Iterable, Optional

__all__ = [
    'PathClass',
    'BOUNDARY_CLASS_NAME',
    'is_ignored_class',
    'is_graded_intensity_class',
    'is_one_plus',
    'is_two_plus',
    'is_three_plus',
    'is_positive_class',
    'is_negative_class',
    'is_positive_or_graded_intensity_class',
    'non_intensity_ancestor',
    'split_names',
    'unique_names',
    'sort_names',
    'remove_names',
]

BOUNDARY_CLASS_NAME = "Boundary"

POSITIVE = "Positive"
NEGATIVE = "Negative"
ONE_PLUS = "1+"
TWO_PLUS = "2+"
THREE_PLUS = "3+"
INTENSITY_CLASS_NAMES = (ONE_PLUS, TWO_PLUS, THREE_PLUS)

DEFAULT_COLORS = {
    "Tumor": (200, 0, 0),
    "Stroma": (150, 200, 150),
    "Immune cells": (160, 90, 160),
    "Necrosis": (50, 50, 50),
    "Other": (255, 200, 0),
    "Region*": (0, 0, 180),
    "Ignore*": (180, 180, 180),
    BOUNDARY_CLASS_NAME: (90, 90, 90),
    POSITIVE: (200, 50, 50),
    NEGATIVE: (112, 112, 225),
    ONE_PLUS: (255, 215, 0),
    TWO_PLUS: (225, 150, 50),
    THREE_PLUS: (200, 50, 50),
}


def _hash_color(name: str) -> tuple[int, int, int]:
    digest = hashlib.md5(name.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]


class PathClass:
    """Interned classification, optionally derived from a parent class."""

    _registry: dict = {}
    _lock = threading.Lock()

    __slots__ = ("name", "parent", "color")

    def __init__(self, name: str, parent: Optional["PathClass"], color: tuple[int, int, int]):
        self.name = name
        self.parent = parent
        self.color = color

    @classmethod
    def get(cls, name: str, parent: Optional["PathClass"] = None, color=None) -> "PathClass":
        """Return the interned class for ``name`` under ``parent``.

        ``name`` may be a full derived string such as "Tumor: Positive".
        """
        if parent is None and ": " in name:
            parts = [p.strip() for p in name.split(": ")]
            return cls.from_names(parts)
        key = (parent, name)
        with cls._lock:
            existing = cls._registry.get(key)
            if existing is None:
                if color is None:
                    color = DEFAULT_COLORS.get(name, _hash_color(str(parent) + ": " + name if parent else name))
                existing = cls(name, parent, tuple(color))
                cls._registry[key] = existing
            return existing

    @classmethod
    def from_names(cls, names: Iterable[str]) -> Optional["PathClass"]:
        """Chain ``names`` into a derived class; empty input gives None."""
        path_class = None
        for name in names:
            path_class = cls.get(name, path_class)
        return path_class

    @property
    def is_derived(self) -> bool:
        return self.parent is not None

    def derive(self, name: str) -> "PathClass":
        return PathClass.get(name, self)

    def __str__(self):
        if self.parent is None:
            return self.name
        return f"{self.parent}: {self.name}"

    def __repr__(self):
        return f"PathClass({str(self)!r})"

    def __reduce__(self):
        # Unpickling goes through the registry so identity survives a round trip
        return (PathClass.get, (self.name, self.parent, self.color))


def is_ignored_class(path_class: Optional[PathClass]) -> bool:
    """True for missing, nameless, or '*'-suffixed classes, which never train."""
    return path_class is None or not path_class.name or path_class.name.endswith("*")


def is_graded_intensity_class(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name in INTENSITY_CLASS_NAMES


def is_one_plus(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name == ONE_PLUS


def is_two_plus(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name == TWO_PLUS


def is_three_plus(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name == THREE_PLUS


def is_positive_class(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name == POSITIVE


def is_negative_class(path_class: Optional[PathClass]) -> bool:
    return path_class is not None and path_class.name == NEGATIVE


def is_positive_or_graded_intensity_class(path_class: Optional[PathClass]) -> bool:
    return is_positive_class(path_class) or is_graded_intensity_class(path_class)


def non_intensity_ancestor(path_class: Optional[PathClass]) -> Optional[PathClass]:
    """Walk up past Positive/Negative/1+/2+/3+ to the first other class.

    Returns None if there is none.
    """
    while path_class is not None and (
        is_positive_or_graded_intensity_class(path_class) or is_negative_class(path_class)
    ):
        path_class = path_class.parent
    return path_class


def split_names(path_class: Optional[PathClass]) -> list[str]:
    """Names from the root class down to ``path_class``."""
    names = []
    while path_class is not None:
        names.append(path_class.name)
        path_class = path_class.parent
    names.reverse()
    return names


def unique_names(path_class: Optional[PathClass]) -> Optional[PathClass]:
    """Same class with repeated names removed, keeping first occurrences."""
    names = split_names(path_class)
    return PathClass.from_names(dict.fromkeys(names))


def sort_names(path_class: Optional[PathClass], key: Optional[Callable[[str], object]] = None) -> Optional[PathClass]:
    return PathClass.from_names(sorted(split_names(path_class), key=key))


def remove_names(path_class: Optional[PathClass], names_to_remove: Iterable[str]) -> Optional[PathClass]:
    """Class with ``names_to_remove`` dropped; unchanged if none matched."""
    to_remove = set(names_to_remove)
    names = split_names(path_class)
    kept = [n for n in names if n not in to_remove]
    if len(kept) == len(names):
        return path_class
    return PathClass.from_names(kept)
