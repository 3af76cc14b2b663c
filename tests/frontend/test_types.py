"""
Tests for the program view and structural type queries.
"""

import ast
import textwrap
import unittest

from spanguard.capability import SPAN_CAPABILITY
from spanguard.frontend import ProgramView, TypeView

HEADER = """
import typing
from typing import Annotated, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Span as OtelSpan

SpanAlias = trace.Span
"""


def viewOf(source):
    program = ProgramView.from_source(textwrap.dedent(source).lstrip("\n"), "sample.py")
    return program, TypeView(program, SPAN_CAPABILITY)


def annotation(text):
    return ast.parse(text, mode="eval").body


class TestHandleTypes(unittest.TestCase):
    def setUp(self):
        self.program, self.types = viewOf(
            HEADER
            + """
class Timer:
    def end(self):
        pass

class Recorder(OtelSpan):
    pass

class Plain:
    def close(self):
        pass
"""
        )

    def assertHandle(self, text):
        self.assertTrue(self.types.is_handle_type(annotation(text)), text)

    def assertNotHandle(self, text):
        self.assertFalse(self.types.is_handle_type(annotation(text)), text)

    def testAliasesOfTheHandleType(self):
        self.assertHandle("trace.Span")
        self.assertHandle("OtelSpan")
        self.assertHandle("SpanAlias")

    def testWrappers(self):
        self.assertHandle("Optional[trace.Span]")
        self.assertHandle("typing.Optional[OtelSpan]")
        self.assertHandle("Union[None, OtelSpan]")
        self.assertHandle("OtelSpan | None")
        self.assertHandle("Annotated[OtelSpan, 'x']")
        self.assertHandle("'trace.Span'")

    def testStructuralMatch(self):
        self.assertHandle("Timer")
        self.assertHandle("Recorder")
        self.assertNotHandle("Plain")
        self.assertNotHandle("int")
        self.assertNotHandle("list[OtelSpan]")

    def testTuplePositions(self):
        self.assertEqual(self.types.handle_positions(annotation("tuple[dict, OtelSpan]")), [1])
        self.assertEqual(self.types.handle_positions(annotation("OtelSpan")), [None])
        self.assertEqual(self.types.handle_positions(annotation("int")), [])

    def testInheritedMethods(self):
        self.assertIn("set_attribute", self.types.class_methods["Recorder"])
        self.assertTrue(self.types.defines_handle_class())


class TestHandleReturning(unittest.TestCase):
    def testResultAnnotations(self):
        program, types = viewOf(
            HEADER
            + """
def make() -> OtelSpan:
    pass

def maybe() -> Optional[OtelSpan]:
    pass

def pair() -> tuple[dict, OtelSpan]:
    pass

def many() -> typing.Iterator[OtelSpan]:
    pass

def count() -> int:
    pass

def bare():
    pass
"""
        )
        returning = {f.name for f in program.functions if types.is_handle_returning(f)}
        self.assertEqual(returning, {"make", "maybe", "pair", "many"})


class TestProgramView(unittest.TestCase):
    def testImportsAndAliases(self):
        program, _ = viewOf(HEADER)
        self.assertIn("opentelemetry", program.imports)
        self.assertEqual(program.import_aliases["OtelSpan"], "opentelemetry.trace.Span")
        self.assertIn("SpanAlias", program.type_aliases)

    def testFunctionsAndMethods(self):
        program, _ = viewOf(
            """
            class Worker:
                def run(self):
                    def helper():
                        pass
                    return lambda: helper()

            def top():
                pass
            """
        )
        names = [f.name for f in program.functions]
        self.assertEqual(names[:3], ["run", "helper", "<lambda>"])
        self.assertIn("top", program.module_functions)
        self.assertNotIn("run", program.module_functions)
        run = program.functions[0]
        self.assertEqual(run.params, ["self"])
        self.assertEqual(run.nested_named("helper").name, "helper")

    def testSyntaxError(self):
        with self.assertRaises(SyntaxError):
            ProgramView.from_source("def broken(:\n", "bad.py")


if __name__ == "__main__":
    unittest.main()
