"""
Utility tests (sentinel, naming helpers, Introspectable).

Scope
- Validate the Unset sentinel and coalesce().
- Validate rename(), mirror() and the text helpers.
- Validate Introspectable type names, mirrored fields and repr.

Conventions
- Test method names follow CamelCase per project convention.
"""
import unittest
from typing import NamedTuple
from unittest import TestCase

from parley.utils import *


class Pair(NamedTuple):
    left: object
    right: object


class Sample(metaclass=Introspectable):
    __introspectable__ = ("items", "pair")

    def __init__(self, items, pair):
        self._items = items
        self._pair = pair


class TestUnset(TestCase):

    def testSentinel(self):
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")
        self.assertIs(UnsetType(), Unset)
        self.assertIsInstance(Unset, str | UnsetType)
        with self.assertRaises(TypeError):
            type("Subclass", (UnsetType,), {})

    def testCoalesce(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(Unset))
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertEqual(coalesce(0, 1), 0)


class TestHelpers(TestCase):

    def testRename(self):
        @rename("renamed")
        def original():
            pass

        self.assertEqual(original.__name__, "renamed")
        self.assertEqual(original.__qualname__, "renamed")
        with self.assertRaises(TypeError):
            rename(42, "name")
        with self.assertRaises(TypeError):
            rename()

    def testKebabcase(self):
        self.assertEqual(kebabcase("target_user"), "target-user")
        self.assertEqual(kebabcase("targetUser"), "target-user")
        self.assertEqual(kebabcase("_private"), "private")
        self.assertEqual(kebabcase("ban"), "ban")

    def testOrdinal(self):
        self.assertEqual([ordinal(number) for number in (1, 2, 3, 4, 11, 12, 13, 21, 102, 111)],
                         ["1st", "2nd", "3rd", "4th", "11th", "12th", "13th", "21st", "102nd", "111th"])

    def testPluralize(self):
        self.assertEqual(pluralize("argument"), "arguments")
        self.assertEqual(pluralize("alias"), "aliases")
        self.assertEqual(pluralize("entry"), "entries")
        self.assertEqual(pluralize("day"), "days")
        self.assertEqual(pluralize("Choice"), "Choices")


class TestIntrospectable(TestCase):

    def testTypename(self):
        self.assertEqual(Sample.__typename__, "sample")

    def testSentinelIsTheDefaultDisplay(self):
        self.assertIs(Introspectable.__displayable__, Unset)

    def testMirroredFieldsAreCopies(self):
        items = [1, [2, 3]]
        sample = Sample(items, Pair({"a"}, {"b": [1]}))
        self.assertEqual(sample.items, [1, [2, 3]])
        self.assertIsNot(sample.items, items)
        self.assertIsNot(sample.items[1], items[1])
        self.assertIsInstance(sample.pair, Pair)
        self.assertEqual(sample.pair.left, {"a"})
        self.assertIsInstance(sample.pair.left, set)
        self.assertEqual(sample.pair.right, {"b": [1]})

    def testMirroredFieldsKeepContainerTypes(self):
        sample = Sample((1, frozenset({2})), [b"raw", "text"])
        self.assertEqual(type(sample.items), tuple)
        self.assertEqual(type(sample.items[1]), frozenset)
        self.assertEqual(sample.pair, [b"raw", "text"])
        with self.assertRaises(AttributeError):
            sample.items = ()

    def testRepr(self):
        self.assertEqual(repr(Sample([1], None)), "sample(items=[1], pair=None)")


if __name__ == "__main__":
    unittest.main()
