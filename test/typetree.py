"""
Type tree tests (identities, registry lifecycle, assignability rules).

Scope
- Validate identities are stable, content-addressed and nullable-aware.
- Validate the registry lifecycle (unloaded, loaded once, unknown ids).
- Validate every assignability rule, generics variance and nullability.
- Validate function subtyping (arity, contravariance, named parameters).

Conventions
- Test method names follow CamelCase per project convention.
- Small local class hierarchies stand in for user types.
"""
import collections.abc
import typing
import unittest
from typing import Any, Callable, Generic, Never, NoReturn, Optional, TypeVar
from unittest import TestCase

from parley.faults import RegistrationError, RegistryNotLoadedError, UnknownTypeError
from parley.typetree import *

T = TypeVar("T")
N = TypeVar("N", bound=int)


class Animal:
    pass


class Dog(Animal):
    pass


class Cat(Animal):
    pass


class Box(Generic[T]):
    pass


class IntBox(Box[int]):
    pass


class TestIdentify(TestCase):
    """identify() and nullable helpers."""

    def testSentinels(self):
        self.assertEqual(identify(Any), DYNAMIC_ID)
        self.assertEqual(identify(None), VOID_ID)
        self.assertEqual(identify(type(None)), VOID_ID)
        self.assertEqual(identify(Never), NEVER_ID)
        self.assertEqual(identify(NoReturn), NEVER_ID)

    def testIdentitiesAreStableAndDistinct(self):
        self.assertEqual(identify(int), identify(int))
        self.assertEqual(identify(list[str]), identify(list[str]))
        self.assertNotEqual(identify(list[str]), identify(list[int]))
        self.assertNotEqual(identify(Dog), identify(Cat))
        for hint in (int, str, Dog, list[int], Callable[[int], str]):
            self.assertGreaterEqual(identify(hint), 8)
            self.assertEqual(identify(hint) % 2, 0)

    def testNullableSpellingsAgree(self):
        self.assertEqual(identify(int | None), identify(Optional[int]))
        self.assertEqual(identify(int | None), identify(int) + NULLABLE_OFFSET)
        self.assertEqual(strip_nullable(identify(int | None)), identify(int))
        self.assertEqual(nullable(identify(int)), identify(int | None))

    def testSentinelsAreNotShifted(self):
        self.assertEqual(identify(Optional[Any]), DYNAMIC_ID)
        self.assertEqual(strip_nullable(DYNAMIC_ID), DYNAMIC_ID)
        self.assertEqual(nullable(NEVER_ID), NEVER_ID)

    def testTypeVarsUseTheirBound(self):
        self.assertEqual(identify(N), identify(int))
        self.assertEqual(identify(T), DYNAMIC_ID)

    def testBareGenericIsDynamicallyParameterized(self):
        self.assertEqual(identify(Box), identify(Box[Any]))

    def testForwardReferencesAreDynamic(self):
        self.assertEqual(identify("Dog"), DYNAMIC_ID)

    def testCallableAndShapeAgree(self):
        self.assertEqual(identify(Callable[[int], str]), identify(FunctionShape(str, int)))
        self.assertEqual(
            identify(collections.abc.Callable[[int], str]),
            identify(typing.Callable[[int], str]),
        )
        self.assertNotEqual(identify(FunctionShape(str, int)), identify(FunctionShape(str, int, required=0)))

    def testUnsupportedHintsRaise(self):
        with self.assertRaises(RegistrationError):
            identify(int | str)
        with self.assertRaises(RegistrationError):
            identify(Callable[..., int])
        with self.assertRaises(RegistrationError):
            identify(typing.Literal["a"])

    def testFunctionShapeValidation(self):
        with self.assertRaises(TypeError):
            FunctionShape(int, str, required=2)
        with self.assertRaises(ValueError):
            FunctionShape(int, named={"a": int}, optional={"a": int})
        self.assertEqual(FunctionShape(int, named={"b": str, "a": int}).named, (("a", int), ("b", str)))


class TestTypeRegistry(TestCase):
    """Registry lifecycle and lookups."""

    def testLookupBeforeLoadRaises(self):
        registry = TypeRegistry()
        self.assertFalse(registry.loaded)
        with self.assertRaises(RegistryNotLoadedError):
            registry[DYNAMIC_ID]
        with self.assertRaises(RegistryNotLoadedError):
            len(registry)

    def testLoadTwiceRaises(self):
        registry = TypeRegistry().load([int])
        with self.assertRaises(RegistrationError):
            registry.load([str])

    def testLoadIncludesRootsAndSupertypes(self):
        registry = TypeRegistry().load([Dog])
        for hint in (object, collections.abc.Callable, Animal, Dog, Any, None, Never):
            self.assertIn(identify(hint), registry)
        self.assertNotIn(identify(Cat), registry)
        self.assertEqual(registry.object_id, identify(object))
        self.assertEqual(registry.function_id, identify(collections.abc.Callable))

    def testEntries(self):
        registry = TypeRegistry().load([Dog | None, list[int], FunctionShape(str, int, named={"x": bool})])
        dog = registry[identify(Dog)]
        self.assertIsInstance(dog, NominalType)
        self.assertEqual(dog.supertypes, (identify(Animal),))
        self.assertFalse(dog.nullable)

        maybe = registry[identify(Dog | None)]
        self.assertTrue(maybe.nullable)
        self.assertEqual(maybe.stripped, dog.stripped)
        self.assertEqual(maybe.supertypes, (identify(Animal | None),))

        self.assertEqual(registry[identify(list[int])].arguments, (identify(int),))

        function = registry[identify(FunctionShape(str, int, named={"x": bool}))]
        self.assertIsInstance(function, FunctionType)
        self.assertEqual(function.returns, identify(str))
        self.assertEqual(function.positional, (identify(int),))
        self.assertEqual(function.named, (("x", identify(bool)),))

        self.assertIsInstance(registry[DYNAMIC_ID], DynamicType)
        self.assertIsInstance(registry[VOID_ID], VoidType)
        self.assertIsInstance(registry[NEVER_ID], NeverType)

    def testGenericSupertypesAreSubstituted(self):
        registry = TypeRegistry().load([IntBox])
        self.assertEqual(registry[identify(IntBox)].supertypes, (identify(Box[int]),))

    def testUnknownIdRaises(self):
        registry = TypeRegistry().load([])
        with self.assertRaises(UnknownTypeError):
            registry[12345678]
        with self.assertRaises(KeyError):
            registry.resolve(Dog)


class TestAssignability(TestCase):
    """is_assignable rules."""

    def setUp(self):
        self.registry = TypeRegistry().load([
            Dog, Cat, bool, Dog | None,
            list[Dog], list[Animal], list[Any],
            IntBox, Box[Animal],
            Callable[[Animal], Dog], Callable[[Dog], Animal], Callable[[Dog], Dog],
            Callable[[Animal], Dog] | None,
            FunctionShape(Dog, Animal, Animal, required=1),
            FunctionShape(Dog, named={"x": Animal}),
            FunctionShape(Dog, optional={"x": Animal}),
            FunctionShape(Dog, named={"x": Dog}),
        ])

    def check(self, a, b):
        return self.registry.is_assignable(a, b)

    def testIdentity(self):
        self.assertTrue(self.check(Dog, Dog))
        self.assertTrue(self.check(Never, Never))

    def testNever(self):
        self.assertFalse(self.check(Never, Dog))
        self.assertFalse(self.check(Dog, Never))
        self.assertFalse(self.check(Never, Any))

    def testVoid(self):
        self.assertTrue(self.check(Dog, None))
        self.assertTrue(self.check(Any, None))
        self.assertFalse(self.check(None, Dog))
        self.assertFalse(self.check(None, Any))

    def testDynamic(self):
        self.assertTrue(self.check(Dog, Any))
        self.assertFalse(self.check(Any, Dog))

    def testSubclasses(self):
        self.assertTrue(self.check(Dog, Animal))
        self.assertTrue(self.check(Dog, object))
        self.assertTrue(self.check(bool, int))
        self.assertFalse(self.check(Animal, Dog))
        self.assertFalse(self.check(Dog, Cat))

    def testGenericsAreCovariant(self):
        self.assertTrue(self.check(list[Dog], list[Animal]))
        self.assertTrue(self.check(list[Dog], list[Any]))
        self.assertFalse(self.check(list[Animal], list[Dog]))
        self.assertTrue(self.check(IntBox, Box[int]))
        self.assertFalse(self.check(IntBox, Box[Animal]))

    def testNullability(self):
        self.assertTrue(self.check(Dog, Dog | None))
        self.assertTrue(self.check(Dog, Animal | None))
        self.assertFalse(self.check(Dog | None, Dog))
        self.assertFalse(self.check(Dog | None, Animal))
        self.assertFalse(self.check(Dog | None, object))
        self.assertTrue(self.check(Dog | None, object | None))

    def testClassesAndFunctions(self):
        self.assertFalse(self.check(Dog, Callable[[Animal], Dog]))
        self.assertTrue(self.check(Callable[[Animal], Dog], object))
        self.assertTrue(self.check(Callable[[Animal], Dog], collections.abc.Callable))
        self.assertFalse(self.check(Callable[[Animal], Dog], Dog))
        self.assertFalse(self.check(Callable[[Animal], Dog] | None, object))

    def testFunctionVariance(self):
        # Wider parameter and narrower return: usable everywhere.
        self.assertTrue(self.check(Callable[[Animal], Dog], Callable[[Dog], Animal]))
        self.assertTrue(self.check(Callable[[Animal], Dog], Callable[[Dog], Dog]))
        self.assertFalse(self.check(Callable[[Dog], Animal], Callable[[Animal], Dog]))
        self.assertTrue(self.check(Callable[[Dog], Dog], Callable[[Dog], Animal]))

    def testFunctionArity(self):
        shape = FunctionShape(Dog, Animal, Animal, required=1)
        # One required and one optional parameter accepts one-argument calls.
        self.assertTrue(self.check(shape, Callable[[Dog], Dog]))
        self.assertTrue(self.check(shape, Callable[[Dog], Animal]))
        self.assertFalse(self.check(Callable[[Dog], Dog], shape))

    def testFunctionNamedParameters(self):
        required = FunctionShape(Dog, named={"x": Animal})
        optional = FunctionShape(Dog, optional={"x": Animal})
        narrow = FunctionShape(Dog, named={"x": Dog})
        self.assertTrue(self.check(optional, required))
        self.assertFalse(self.check(required, optional))
        self.assertTrue(self.check(required, narrow))
        self.assertFalse(self.check(narrow, required))

    def testModuleLevelFunction(self):
        self.assertTrue(is_assignable(identify(Dog), identify(Animal), self.registry))


if __name__ == "__main__":
    unittest.main()
