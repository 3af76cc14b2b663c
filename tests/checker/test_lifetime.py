from __future__ import annotations

MISSING = "MissingRelease"
PREFER = "PreferDeferredRelease"


def test_release_on_one_branch_only_is_missing(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if ok:
                span.end()
            return None
        """
    )
    finding = res.one(MISSING)
    assert (finding.lineno, finding.col_offset) == (2, 4)
    assert finding.test_id == "SG101"
    assert finding.severity == "HIGH"
    assert finding.text == "span missing end() call in the scope"
    assert finding.release_mode == "direct"


def test_early_exit_before_finally_is_missing_with_deferred_release(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if not ok:
                return None
            try:
                work()
            finally:
                span.end()
        """
    )
    assert res.kinds() == [MISSING]
    finding = res.one(MISSING)
    assert finding.lineno == 2
    assert finding.release_mode == "deferred"


def test_unreleased_handle_has_no_release_mode(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            span.add_event("started")
        """
    )
    assert res.one(MISSING).release_mode == "none"


def test_finally_release_covers_every_exit(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            try:
                if ok:
                    return 1
                work()
            finally:
                span.end()
            return 0
        """
    )
    assert res.findings == []


def test_exit_stack_callback_is_deferred(scan):
    res = scan(
        """
        import contextlib

        def handle(tracer, ok):
            with contextlib.ExitStack() as stack:
                span = tracer.start_span("handle")
                stack.callback(span.end)
                if ok:
                    return 1
                for item in range(3):
                    if item:
                        break
            return 0
        """
    )
    assert res.findings == []


def test_with_handle_is_deferred(scan):
    res = scan(
        """
        def handle(tracer, items):
            span = tracer.start_span("handle")
            with span:
                for item in items:
                    if not item:
                        return None
            return items
        """
    )
    assert res.findings == []


def test_returned_handle_needs_no_release(scan):
    res = scan(
        """
        from opentelemetry.trace import Span

        def make_span(tracer, name) -> Span:
            span = tracer.start_span(name)
            span.set_attribute("component", "worker")
            return span
        """
    )
    assert res.findings == []


def test_returning_function_still_reports_overwritten_handle(scan):
    res = scan(
        """
        from opentelemetry.trace import Span

        def make_span(tracer) -> Span:
            span = tracer.start_span("first")
            span = tracer.start_span("second")
            return span
        """
    )
    assert res.lines(MISSING) == [4]
    assert res.one(MISSING).text == "span missing end() call in the scope"


def test_returning_function_reports_handle_abandoned_on_one_branch(scan):
    res = scan(
        """
        from opentelemetry.trace import Span

        def make_span(tracer, ok) -> Span:
            span = tracer.start_span("first")
            if ok:
                return span
            span = tracer.start_span("second")
            return span
        """
    )
    assert res.kinds() == [MISSING]
    assert res.lines(MISSING) == [4]


def test_returning_function_keeps_advisories_for_other_handles(scan):
    res = scan(
        """
        from opentelemetry.trace import Span

        def make_span(tracer) -> Span:
            child = tracer.start_span("child")
            child.end()
            span = tracer.start_span("made")
            return span
        """
    )
    assert res.kinds() == [PREFER]
    assert res.lines(PREFER) == [5]


def test_returned_handle_without_annotation_is_an_escape(scan):
    res = scan(
        """
        def make_span(tracer, name):
            span = tracer.start_span(name)
            return span
        """
    )
    assert res.findings == []


def test_direct_release_on_all_paths_is_advisory_only(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            work()
            span.end()
            return 1
        """
    )
    assert res.kinds() == [PREFER]
    finding = res.one(PREFER)
    assert (finding.lineno, finding.col_offset) == (4, 4)
    assert finding.severity == "LOW"
    assert finding.test_id == "SG102"


def test_nested_function_is_checked_on_its_own(scan):
    res = scan(
        """
        def outer(tracer):
            span = tracer.start_span("outer")
            try:
                def inner():
                    child = tracer.start_span("inner")
                    child.add_event("started")
                inner()
            finally:
                span.end()
        """
    )
    finding = res.one(MISSING)
    assert (finding.lineno, finding.col_offset) == (5, 12)
    assert finding.ident == "child"


def test_redeclared_handle_leaks_first_acquisition(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("first")
            span = tracer.start_span("second")
            span.end()
        """
    )
    assert res.lines(MISSING) == [2]
    assert res.lines(PREFER) == [4]


def test_advisory_is_independent_of_missing_release(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if ok:
                return None
            span.end()
        """
    )
    assert res.lines(MISSING) == [2]
    assert res.lines(PREFER) == [5]


def test_release_on_every_branch_is_covered(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if ok:
                span.end()
            else:
                span.end()
        """
    )
    assert res.by_kind(MISSING) == []
    assert res.lines(PREFER) == [4, 6]


def test_explicit_raise_before_release_leaks(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if not ok:
                raise ValueError("bad")
            span.end()
        """
    )
    assert res.lines(MISSING) == [2]


def test_exception_caught_before_release_leaks(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            try:
                work()
                span.end()
            except ValueError:
                return None
        """
    )
    assert res.lines(MISSING) == [2]


def test_release_in_except_and_else_covers_both(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            try:
                work()
            except Exception:
                span.end()
                raise
            else:
                span.end()
        """
    )
    assert res.by_kind(MISSING) == []


def test_exception_from_acquisition_itself_is_ignored(scan):
    res = scan(
        """
        def handle(tracer):
            try:
                span = tracer.start_span("handle")
            except RuntimeError:
                return None
            try:
                work()
            finally:
                span.end()
        """
    )
    assert res.findings == []


def test_loop_reacquiring_without_release_leaks(scan):
    res = scan(
        """
        def handle(tracer, items):
            for item in items:
                span = tracer.start_span(item)
                if item:
                    continue
                span.end()
        """
    )
    assert res.lines(MISSING) == [3]


def test_infinite_loop_with_release_before_break(scan):
    res = scan(
        """
        def handle(tracer, queue):
            span = tracer.start_span("poll")
            while True:
                item = queue.get()
                if item is None:
                    span.end()
                    break
            return 1
        """
    )
    assert res.by_kind(MISSING) == []
    assert res.lines(PREFER) == [6]


def test_del_before_release_leaks(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            del span
        """
    )
    assert res.lines(MISSING) == [2]


def test_walrus_acquisition_is_tracked(scan):
    res = scan(
        """
        def handle(tracer):
            if (span := tracer.start_span("handle")) is not None:
                span.end()
        """
    )
    finding = res.one(MISSING)
    assert (finding.lineno, finding.col_offset) == (2, 8)


def test_annotated_acquisition_is_tracked(scan):
    res = scan(
        """
        from opentelemetry import trace

        def handle(tracer):
            span: trace.Span = tracer.start_span("handle")
            span.add_event("nothing else")
        """
    )
    assert res.lines(MISSING) == [4]


def test_discarded_and_attribute_acquisitions_are_not_bindings(scan):
    res = scan(
        """
        class Holder:
            def __init__(self, tracer):
                self.span = tracer.start_span("held")
                tracer.start_span("discarded")
        """
    )
    assert res.findings == []


def test_closure_release_called_directly(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")

            def _done():
                span.end()

            work()
            _done()
        """
    )
    assert res.by_kind(MISSING) == []
    assert res.lines(PREFER) == [8]


def test_closure_release_registered_as_callback(scan):
    res = scan(
        """
        def handle(tracer, stack):
            span = tracer.start_span("handle")

            def _done():
                span.end()

            stack.callback(_done)
            return work()
        """
    )
    assert res.findings == []


def test_lambda_release_registered_as_callback(scan):
    res = scan(
        """
        def handle(tracer, stack):
            span = tracer.start_span("handle")
            stack.callback(lambda: span.end())
            return work()
        """
    )
    assert res.findings == []


def test_conditional_registration_does_not_cover_other_paths(scan):
    res = scan(
        """
        def handle(tracer, stack, ok):
            span = tracer.start_span("handle")
            if ok:
                stack.callback(span.end)
            return 1
        """
    )
    assert res.kinds() == [MISSING]


def test_registration_not_dominated_by_acquisition_counts_as_direct(scan):
    res = scan(
        """
        def handle(tracer, stack, ok):
            span = None
            if ok:
                span = tracer.start_span("handle")
            stack.callback(span.end)
        """
    )
    assert res.by_kind(MISSING) == []
    assert res.lines(PREFER) == [5]


def test_forwarded_handle_must_be_released_by_caller(scan):
    res = scan(
        """
        from opentelemetry.trace import Span

        def make_span(tracer) -> Span:
            return tracer.start_span("made")

        def handle(tracer):
            span = make_span(tracer)
            span.add_event("forgot to end")
        """
    )
    finding = res.one(MISSING)
    assert finding.lineno == 7


def test_result_index_tracks_only_the_handle(scan):
    from spanguard.capability import CapabilityDescriptor, SPAN_CAPABILITY

    capability = CapabilityDescriptor(
        acquire_call="start",
        handle_type=SPAN_CAPABILITY.handle_type,
        release_method="end",
        handle_methods=SPAN_CAPABILITY.handle_methods,
        result_index=1,
    )
    res = scan(
        """
        def handle(tracer):
            ctx, span = tracer.start("handle")
            ctx.detach()
        """,
        config_overrides={"capability": capability},
    )
    finding = res.one(MISSING)
    assert (finding.lineno, finding.col_offset, finding.ident) == (2, 9, "span")


def test_advisories_can_be_disabled(scan):
    res = scan(
        """
        def handle(tracer):
            span = tracer.start_span("handle")
            span.end()
        """,
        config_overrides={"report_advisories": False},
    )
    assert res.findings == []


def test_high_severity_filter_drops_advisories(scan):
    res = scan(
        """
        def handle(tracer, ok):
            span = tracer.start_span("handle")
            if ok:
                span.end()
        """,
        sev_level="HIGH",
    )
    assert res.kinds() == [MISSING]
