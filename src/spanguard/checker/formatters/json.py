r"""
==============
JSON formatter
==============

This formatter outputs the findings in JSON format.

:Example:

.. code-block:: javascript

    {
      "errors": [],
      "generated_at": "2026-01-01T00:00:00Z",
      "metrics": {
        "_totals": {"loc": 12, "functions": 2, "MissingRelease": 1, ...}
      },
      "results": [
        {
          "code": "11 def handle(tracer, request):\n12     span = ...\n",
          "filename": "service/handlers.py",
          "kind": "MissingRelease",
          "issue_severity": "HIGH",
          "issue_text": "span missing end() call in the scope",
          "line_number": 12,
          "col_offset": 4,
          "release_mode": "direct",
          "test_id": "SG101",
          "test_name": "spanguard"
        }
      ]
    }

"""
import datetime
import json
import logging
import operator
import sys

from .utils import wrap_file_object

LOG = logging.getLogger(__name__)


def report(manager, fileobj, sev_level, conf_level, lines=-1):
    """Prints findings in JSON format

    :param manager: the checker manager object
    :param fileobj: The output file object, which may be sys.stdout
    :param sev_level: Filtering severity level
    :param conf_level: Filtering confidence level
    :param lines: Number of lines to report, -1 for all
    """
    machine_output = {"results": [], "errors": []}
    for fname, reason in manager.get_skipped():
        machine_output["errors"].append({"filename": fname, "reason": reason})

    findings = manager.get_issue_list(sev_level=sev_level, conf_level=conf_level)
    results = [finding.as_dict(max_lines=lines if lines > 0 else 3) for finding in findings]
    collector = sorted(results, key=operator.itemgetter("filename", "line_number", "col_offset"))

    machine_output["results"] = collector
    machine_output["metrics"] = manager.metrics.data
    machine_output["aborted"] = manager.aborted
    machine_output["generated_at"] = datetime.datetime.now(datetime.timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )

    result = json.dumps(machine_output, sort_keys=True, indent=2, separators=(",", ": "))

    out = wrap_file_object(fileobj)
    out.write(result + "\n")
    out.flush()

    if fileobj is not sys.stdout and getattr(fileobj, "name", None):
        LOG.info("JSON output written to file: %s", fileobj.name)
