
# SPDX-License-Identifier: Apache-2.0
r"""
==============
Text Formatter
==============

This formatter outputs the findings as plain text.

:Example:

.. code-block:: none

    >> Finding: [SG101:spanguard] span missing end() call in the scope
       Kind: MissingRelease   Severity: High
       Location: service/handlers.py:12:4
    11  def handle(tracer, request):
    12      span = tracer.start_span("handle")
    13      if request.ok:

"""
import datetime
import logging
import sys

from ..core import constants
from ..core import issue
from .utils import wrap_file_object

LOG = logging.getLogger(__name__)


def get_verbose_details(manager):
    bits = []
    bits.append(f"Files in scope ({len(manager.files_list)}):")
    tpl = "\t%s (functions: %i, findings: %i)"
    for fname in manager.files_list:
        counters = manager.metrics.data.get(fname)
        if counters is None:
            continue
        findings = sum(counters[kind] for kind in issue.KINDS)
        bits.append(tpl % (fname, counters["functions"], findings))
    bits.append(f"Files excluded ({len(manager.excluded_files)}):")
    bits.extend([f"\t{fname}" for fname in manager.excluded_files])
    bits.append(f"Files not using {manager.capability.handle_type} ({len(manager.not_applicable)}):")
    bits.extend([f"\t{fname}" for fname in manager.not_applicable])
    return "\n".join([bit for bit in bits])


def get_metrics(manager):
    totals = manager.metrics.data["_totals"]
    bits = []
    bits.append("\nRun metrics:")
    bits.append("\tTotal findings (by severity):")
    for rank in constants.RANKING:
        bits.append("\t\t%s: %s" % (rank.capitalize(), totals[f"SEVERITY.{rank}"]))
    bits.append("\tTotal findings (by kind):")
    for kind in issue.KINDS:
        bits.append("\t\t%s: %s" % (kind, totals[kind]))
    return "\n".join([bit for bit in bits])


def _output_finding_str(finding, indent, show_code=True, lines=-1):
    # returns a list of lines that should be added to the existing lines list
    bits = [
        f"{indent}>> Finding: [{finding.test_id}:{finding.test}] {finding.text}",
        f"{indent}   Kind: {finding.kind}   Severity: {finding.severity.capitalize()}",
        f"{indent}   Location: {finding.fname}:{finding.lineno}:{finding.col_offset}",
    ]
    if finding.release_mode is not None:
        bits.append(f"{indent}   Release: {finding.release_mode}")

    if show_code:
        bits.extend(indent + line for line in finding.get_code(lines, True).split("\n"))

    return "\n".join(bits)


def get_results(manager, sev_level, conf_level, lines):
    bits = []
    findings = manager.get_issue_list(sev_level, conf_level)

    if not len(findings):
        return "\tNo findings identified."

    for finding in findings:
        bits.append(_output_finding_str(finding, "", lines=lines))
        bits.append("-" * 50)
    return "\n".join(bits)


def report(manager, fileobj, sev_level, conf_level, lines=-1):
    """Prints discovered findings in the text format

    :param manager: the checker manager object
    :param fileobj: The output file object, which may be sys.stdout
    :param sev_level: Filtering severity level
    :param conf_level: Filtering confidence level
    :param lines: Number of lines to report, -1 for all
    """
    if manager.quiet and not manager.results_count(sev_level, conf_level):
        return

    bits = [f"Run started:{datetime.datetime.now(datetime.timezone.utc)}"]

    if manager.verbose:
        bits.append(get_verbose_details(manager))

    totals = manager.metrics.data["_totals"]
    bits.extend([
        "\nTest results:", get_results(manager, sev_level, conf_level, lines),
        "\nCode scanned:", f"\tTotal lines of code: {totals['loc']}",
        f"\tTotal functions analyzed: {totals['functions']}",
        f"\tTotal findings skipped (#nolint): {totals['nolint']}",
        f"\tTotal findings skipped due to specifically being disabled (e.g., #nolint: {manager.checker_name}): {totals['skipped_tests']}",
    ])
    if manager.aborted:
        bits.append("\nRun aborted: results are partial.")

    skipped = manager.get_skipped()
    bits.extend([get_metrics(manager), f"Files skipped ({len(skipped)}):"])
    bits.extend(f"\t{skip[0]} ({skip[1]})" for skip in skipped)

    out = wrap_file_object(fileobj)
    out.write("\n".join(bits) + "\n")
    out.flush()

    if fileobj is not sys.stdout and getattr(fileobj, "name", None):
        LOG.info("Text output written to file: %s", fileobj.name)
