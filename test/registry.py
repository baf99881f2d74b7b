"""
Converter registry and parse orchestrator tests.

Scope
- Validate converters are keyed by output type identity (later wins).
- Validate assembled converters for subtypes and supertypes of a target.
- Validate parse() fault mapping (no converter, parsing error, failed conversion).

Conventions
- Test method names follow CamelCase per project convention.
- Assembled-converter warnings are captured with warnings.catch_warnings.
"""
import unittest
import warnings
from typing import Optional
from unittest import IsolatedAsyncioTestCase, TestCase

from parley.converters import *
from parley.faults import *
from parley.registry import *
from parley.typetree import TypeRegistry
from parley.view import StringView


class Animal:
    def __init__(self, name):
        self.name = name


class Dog(Animal):
    pass


def _animal(view, context):
    word = view.get_word()
    return (Dog if word.startswith("dog:") else Animal)(word)


class TestConverterRegistry(TestCase):
    """Registration and lookup."""

    def testLookupIsByIdentity(self):
        registry = ConverterRegistry(DEFAULT_CONVERTERS)
        self.assertIs(registry.get(int), int_converter)
        self.assertIsNone(registry.get(complex))
        self.assertIn(str, registry)
        self.assertEqual(len(registry), len(DEFAULT_CONVERTERS))

    def testNullableSpellingsShareSlot(self):
        registry = ConverterRegistry()
        converter = registry.add(Converter(lambda view, context: None, int | None))
        self.assertIs(registry.get(Optional[int]), converter)

    def testLaterRegistrationWins(self):
        registry = ConverterRegistry([int_converter])
        positive = registry.add(IntConverter(minimum=1))
        self.assertIs(registry.get(int), positive)
        self.assertEqual(list(registry), [positive])

    def testAddRejectsNonConverters(self):
        with self.assertRaises(TypeError):
            ConverterRegistry().add(int)


class TestAssemble(IsolatedAsyncioTestCase):
    """Converters assembled from related types."""

    def setUp(self):
        self.registry = ConverterRegistry([string_converter, int_converter, bool_converter])
        self.registry.add(Converter(_animal, Animal))

    def types(self, *hints):
        return TypeRegistry().load([*self.registry.outputs, *hints])

    async def testSubtypeConvertersAreUsed(self):
        types = self.types(object)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            converter = self.registry.assemble(object, types)
        self.assertIsInstance(converter, FallbackConverter)
        self.assertEqual(len(converter.converters), 4)
        self.assertTrue(any(isinstance(warning.message, AssembledConverterWarning) for warning in caught))
        self.assertEqual(await converter(StringView("anything"), None), "anything")

    async def testSupertypeConvertersAreNarrowed(self):
        types = self.types(Dog)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            converter = self.registry.assemble(Dog, types)
        self.assertIsInstance(await converter(StringView("dog:rex"), None), Dog)
        view = StringView("cat:tom")
        self.assertIsNone(await converter(view, None))
        self.assertEqual(view.index, 0)

    def testNothingFits(self):
        self.assertIsNone(self.registry.assemble(float, self.types(float)))


class TestParse(IsolatedAsyncioTestCase):
    """parse() orchestration and fault mapping."""

    def setUp(self):
        self.registry = ConverterRegistry(DEFAULT_CONVERTERS)

    async def testExactConverter(self):
        view = StringView("42 rest")
        self.assertEqual(await parse(self.registry, None, view, int), 42)
        self.assertEqual(view.remaining, " rest")

    async def testOverrideIsUsedUnconditionally(self):
        upper = Converter(lambda view, context: view.get_word().upper(), str)
        self.assertEqual(await parse(self.registry, None, StringView("abc"), int, upper), "ABC")

    async def testMissingConverterRaises(self):
        with self.assertRaises(NoConverterError) as context:
            await parse(self.registry, None, StringView("1+2j"), complex)
        self.assertIs(context.exception.expected, complex)

    async def testFailedConversionCarriesContext(self):
        with self.assertRaises(ConversionFailedError) as context:
            await parse(self.registry, None, StringView("abc"), int)
        fault = context.exception
        self.assertIsInstance(fault, BadInputError)
        self.assertEqual(fault.input, "abc")
        self.assertIs(fault.converter, int_converter)
        self.assertIs(fault.expected, int)
        self.assertEqual(fault.code, FaultCode.CONVERSION_FAILED)

    async def testParsingErrorBecomesBadInput(self):
        with self.assertRaises(BadInputError) as context:
            await parse(self.registry, None, StringView('"unclosed'), str)
        self.assertNotIsInstance(context.exception, ConversionFailedError)
        self.assertIsInstance(context.exception.__cause__, ParsingError)
        self.assertIn("unclosed quote", context.exception.message)

    async def testOtherExceptionsPropagate(self):
        def explode(view, context):
            raise ZeroDivisionError

        with self.assertRaises(ZeroDivisionError):
            await parse(self.registry, None, StringView("x"), int, Converter(explode, int))

    async def testInputOfConverterThatConsumedNothing(self):
        nothing = Converter(lambda view, context: None, int)
        with self.assertRaises(ConversionFailedError) as context:
            await parse(self.registry, None, StringView("  word rest"), int, nothing)
        self.assertEqual(context.exception.input, "word")


if __name__ == "__main__":
    unittest.main()
