"""
Tests for control flow graph construction.

This module tests the lowering of function bodies into CFGs, including:
- Straight-line code and branches
- Loops, with and without an exit
- Exception edges inside try statements with handlers
- Finally bodies lowered once per exit route
- Match statements and assertions
- Dominators over the lowered graph
"""

import ast
import textwrap
import unittest

from spanguard.analysis.cfg import EXCEPTION, DominatorInfo, buildCFG
from spanguard.errors import UnsupportedConstruct
from spanguard.frontend import ProgramView
from spanguard.util.graphalgorithim import dominator


def functionOf(source, name=None):
    program = ProgramView.from_source(textwrap.dedent(source).lstrip("\n"), "sample.py")
    if name is None:
        return program.functions[0]
    return next(f for f in program.functions if f.name == name)


def exceptionSuccessors(block):
    return [b for b, label in block.next if label == EXCEPTION]


def cfgOf(source, name=None):
    return buildCFG(functionOf(source, name))


def firstBody(cfg):
    return cfg.entry.forward()[0]


class TestStraightLine(unittest.TestCase):
    def testSingleBlock(self):
        cfg = cfgOf(
            """
            def f(x):
                y = x
                return y
            """
        )
        body = firstBody(cfg)
        self.assertEqual([e.role for e in body.events], ["stmt", "stmt"])
        self.assertEqual(body.forward(), [cfg.returnExit])
        self.assertEqual(cfg.exits, [cfg.returnExit])

    def testFallingOffTheEndReturns(self):
        cfg = cfgOf(
            """
            def f(x):
                x.go()
            """
        )
        self.assertEqual(firstBody(cfg).forward(), [cfg.returnExit])

    def testLambdaBodyIsAReturnEvent(self):
        cfg = cfgOf("f = lambda span: span.end()\n")
        body = firstBody(cfg)
        self.assertEqual([e.role for e in body.events], ["return"])
        self.assertIsInstance(body.events[0].node, ast.Call)

    def testCodeAfterReturnIsPruned(self):
        function = functionOf(
            """
            def f():
                return 1
                unreachable()
            """
        )
        cfg = buildCFG(function)
        dead = function.node.body[1]
        self.assertEqual(cfg.locations(dead), [])


class TestBranches(unittest.TestCase):
    def testIfWithoutElse(self):
        cfg = cfgOf(
            """
            def f(x):
                if x:
                    x = 1
                return x
            """
        )
        cond = firstBody(cfg)
        self.assertEqual(cond.events[0].role, "test")
        then, join = cond.forward()
        self.assertEqual(then.forward(), [join])

        dom = DominatorInfo(cfg)
        self.assertTrue(dom.dominates(cond, join))
        self.assertFalse(dom.dominates(then, join))
        self.assertIn(join, dom.dominated(cond))

    def testBothBranchesReturn(self):
        function = functionOf(
            """
            def f(x):
                if x:
                    return 1
                else:
                    return 2
                after()
            """
        )
        cfg = buildCFG(function)
        self.assertEqual(cfg.locations(function.node.body[1]), [])
        self.assertEqual(cfg.exits, [cfg.returnExit])

    def testExhaustiveMatch(self):
        cfg = cfgOf(
            """
            def f(cmd):
                match cmd:
                    case "a":
                        x = 1
                    case _:
                        x = 2
                return x
            """
        )
        subject = firstBody(cfg)
        self.assertEqual(subject.events[0].role, "test")
        cases = subject.forward()
        self.assertEqual(len(cases), 2)
        self.assertEqual([c.events[0].role for c in cases], ["case", "case"])

    def testNonExhaustiveMatchFallsThrough(self):
        cfg = cfgOf(
            """
            def f(cmd):
                match cmd:
                    case "a":
                        x = 1
                return 0
            """
        )
        self.assertEqual(len(firstBody(cfg).forward()), 2)

    def testAssertMayRaise(self):
        cfg = cfgOf(
            """
            def f(x):
                assert x
                return x
            """
        )
        self.assertIn(cfg.raiseExit, cfg.exits)
        self.assertIn(cfg.raiseExit, firstBody(cfg).forward())


class TestLoops(unittest.TestCase):
    def testInfiniteLoopHasNoExit(self):
        cfg = cfgOf(
            """
            def f():
                while True:
                    pass
            """
        )
        self.assertEqual(cfg.exits, [])

    def testBreakLeavesInfiniteLoop(self):
        cfg = cfgOf(
            """
            def f(q):
                while True:
                    if q.get():
                        break
                return 1
            """
        )
        self.assertEqual(cfg.exits, [cfg.returnExit])

    def testForLoopHasBackEdge(self):
        function = functionOf(
            """
            def f(items):
                for item in items:
                    item.go()
            """
        )
        cfg = buildCFG(function)
        loop = function.node.body[0]
        (header, _), = cfg.locations(loop.target)
        (body, _), = cfg.locations(loop.body[0])
        self.assertIn(header, body.forward())

    def testBreakOutsideLoop(self):
        with self.assertRaises(UnsupportedConstruct) as cm:
            cfgOf(
                """
                def f():
                    break
                """
            )
        self.assertEqual(cm.exception.lineno, 2)


class TestExceptions(unittest.TestCase):
    def testGuardedEventsHaveExceptionEdges(self):
        function = functionOf(
            """
            def f():
                try:
                    a()
                    b()
                except ValueError:
                    return 1
                return 0
            """
        )
        cfg = buildCFG(function)
        tryNode = function.node.body[0]
        dispatches = []
        for stmt in tryNode.body:
            (block, index), = cfg.locations(stmt)
            self.assertEqual((len(block.events), index), (1, 0))
            dispatches.extend(exceptionSuccessors(block))

        self.assertEqual(len(dispatches), 2)
        self.assertIs(dispatches[0], dispatches[1])
        dispatch = dispatches[0]
        self.assertIn(cfg.raiseExit, dispatch.forward())
        handlers = [b for b in dispatch.forward() if b.events]
        self.assertEqual(handlers[0].events[0].role, "handler")

    def testCatchAllHandlerDoesNotReraise(self):
        function = functionOf(
            """
            def f():
                try:
                    a()
                except Exception:
                    return 1
                return 0
            """
        )
        cfg = buildCFG(function)
        (block, _), = cfg.locations(function.node.body[0].body[0])
        dispatch, = exceptionSuccessors(block)
        self.assertNotIn(cfg.raiseExit, dispatch.forward())

    def testUnguardedCodeHasNoExceptionEdges(self):
        cfg = cfgOf(
            """
            def f():
                a()
                b()
            """
        )
        for block in cfg.blocks:
            self.assertNotIn(EXCEPTION, [label for _, label in block.next])

    def testFinallyIsLoweredPerRoute(self):
        function = functionOf(
            """
            def f(x):
                try:
                    if x:
                        return 1
                finally:
                    done()
                return 0
            """
        )
        cfg = buildCFG(function)
        done = function.node.body[0].finalbody[0]
        sites = cfg.locations(done)
        self.assertEqual(len(sites), 2)
        for block, index in sites:
            self.assertTrue(block.events[index].in_finally)

    def testRaiseThroughFinally(self):
        function = functionOf(
            """
            def f(x):
                try:
                    raise ValueError(x)
                finally:
                    done()
            """
        )
        cfg = buildCFG(function)
        (block, _), = cfg.locations(function.node.body[0].finalbody[0])
        self.assertEqual(block.forward(), [cfg.raiseExit])
        self.assertEqual(cfg.exits, [cfg.raiseExit])


class TestDominators(unittest.TestCase):
    def testDiamond(self):
        G = {"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []}
        idoms = dominator.findIDoms(G, "a")
        self.assertEqual(idoms, {"a": None, "b": "a", "c": "a", "d": "a"})
        self.assertTrue(dominator.dominates(idoms, "a", "d"))
        self.assertFalse(dominator.dominates(idoms, "b", "d"))
        self.assertTrue(dominator.dominates(idoms, "d", "d"))

    def testLoop(self):
        G = {"entry": ["head"], "head": ["body", "exit"], "body": ["head"], "exit": []}
        idoms = dominator.findIDoms(G, "entry")
        self.assertEqual(idoms["body"], "head")
        self.assertEqual(idoms["exit"], "head")


if __name__ == "__main__":
    unittest.main()
