"""
Tests for the scope model and handle binding discovery.
"""

import ast
import textwrap
import unittest

from spanguard.analysis import scopes
from spanguard.analysis.escape import names_binding
from spanguard.capability import SPAN_CAPABILITY
from spanguard.frontend import ProgramView, TypeView


class ScopeTestCase(unittest.TestCase):
    capability = SPAN_CAPABILITY

    def treeOf(self, source, name=None):
        program = ProgramView.from_source(textwrap.dedent(source).lstrip("\n"), "sample.py")
        types = TypeView(program, self.capability)
        handle_returning = frozenset(f for f in program.functions if types.is_handle_returning(f))
        function = program.functions[0] if name is None else next(
            f for f in program.functions if f.name == name)
        builder = scopes.ScopeBuilder(program, types, self.capability, handle_returning)
        return builder.build(function)


class TestScopeTree(ScopeTestCase):
    def testNestedScopes(self):
        tree = self.treeOf(
            """
            def handle(tracer, names):
                spans = [(s := tracer.start_span(n)) for n in names]
                span = tracer.start_span("outer")

                def inner():
                    child = tracer.start_span("inner")

                return spans
            """
        )
        kinds = [scope.kind for scope in tree.scopes()]
        self.assertEqual(kinds, [scopes.FUNCTION, scopes.COMPREHENSION, scopes.FUNCTION])

        names = sorted(b.name for b in tree.bindings())
        self.assertEqual(names, ["s", "span"])
        for binding in tree.bindings():
            self.assertIs(binding.scope, tree.root)
            self.assertEqual(binding.identity, ("handle", binding.name))

    def testNestedFunctionHasItsOwnBindings(self):
        tree = self.treeOf(
            """
            def handle(tracer):
                def inner():
                    child = tracer.start_span("inner")
                return inner
            """,
            name="inner",
        )
        binding, = tree.bindings()
        self.assertEqual(binding.name, "child")
        self.assertEqual(binding.position, (3, 8))
        self.assertEqual(binding.release_mode, scopes.NONE)


class TestBindings(ScopeTestCase):
    def testAwaitedAcquisition(self):
        tree = self.treeOf(
            """
            async def handle(tracer):
                span = await tracer.start_span("handle")
            """
        )
        binding, = tree.bindings()
        self.assertEqual(binding.call.func.attr, "start_span")
        self.assertFalse(binding.forwarded)

    def testNonNameTargetsAreNotBindings(self):
        tree = self.treeOf(
            """
            def handle(self, tracer, spans):
                self.span = tracer.start_span("a")
                spans[0] = tracer.start_span("b")
                tracer.start_span("c")
            """
        )
        self.assertEqual(tree.bindings(), [])

    def testForwardedFromHandleReturningFunction(self):
        tree = self.treeOf(
            """
            from opentelemetry.trace import Span

            def handle(tracer):
                span = make(tracer)

            def make(tracer) -> Span:
                return tracer.start_span("made")
            """
        )
        binding, = tree.bindings()
        self.assertTrue(binding.forwarded)

    def testTupleResultOfHandleReturningFunction(self):
        tree = self.treeOf(
            """
            from opentelemetry.trace import Span

            def handle(tracer):
                ctx, span = make(tracer)

            def make(tracer) -> tuple[dict, Span]:
                return {}, tracer.start_span("made")
            """
        )
        binding, = tree.bindings()
        self.assertEqual(binding.name, "span")

    def testStarredTargetBeforeHandleIsSkipped(self):
        tree = self.treeOf(
            """
            from opentelemetry.trace import Span

            def handle(tracer):
                *rest, span = make(tracer)

            def make(tracer) -> tuple[dict, Span]:
                return {}, tracer.start_span("made")
            """
        )
        self.assertEqual(tree.bindings(), [])


class TestNamesBinding(unittest.TestCase):
    def testNamesBinding(self):
        expr = ast.parse("(a, [b, {'k': c}], d.e, f(g))", mode="eval").body
        self.assertTrue(names_binding(expr, "a"))
        self.assertTrue(names_binding(expr, "b"))
        self.assertTrue(names_binding(expr, "c"))
        self.assertFalse(names_binding(expr, "d"))
        self.assertFalse(names_binding(expr, "g"))


if __name__ == "__main__":
    unittest.main()
