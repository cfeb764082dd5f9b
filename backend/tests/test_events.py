import json
import unittest
from unittest.mock import patch

from repo_insight.tasks.shared.events import (
    COMPLETE_EVENT,
    ERROR_EVENT,
    PROGRESS_EVENT,
    AnalysisProgressReporter,
    analysis_channel,
    publish_event,
)


def _published(mock_get_redis):
    return [
        (c.args[0], json.loads(c.args[1]))
        for c in mock_get_redis.return_value.publish.call_args_list
    ]


@patch("repo_insight.tasks.shared.events.get_redis")
class TestProgressReporter(unittest.TestCase):

    def test_progress_never_goes_backwards(self, mock_get_redis):
        reporter = AnalysisProgressReporter("abc")

        reporter.progress("file-indexing", "Indexing", 40)
        reporter.progress("metrics", "Metrics", 30)
        reporter.progress("saving", "Saving", 250)

        events = _published(mock_get_redis)
        self.assertEqual({channel for channel, _ in events}, {"repo-analysis-abc"})
        self.assertEqual([e["type"] for _, e in events], [PROGRESS_EVENT] * 3)
        self.assertEqual([e["payload"]["progress"] for _, e in events], [40, 40, 100])

    def test_error_event_carries_minus_one(self, mock_get_redis):
        reporter = AnalysisProgressReporter("abc")
        reporter.progress("metrics", "Metrics", 75)

        reporter.error("tree unavailable")

        _, event = _published(mock_get_redis)[-1]
        self.assertEqual(event["type"], ERROR_EVENT)
        self.assertEqual(event["payload"]["progress"], -1)
        self.assertEqual(event["payload"]["error"], "tree unavailable")
        self.assertEqual(event["payload"]["message"], "Analysis failed: tree unavailable")

    def test_complete_event_reports_duration_and_metrics(self, mock_get_redis):
        AnalysisProgressReporter("abc").complete(1500, {"files": 2, "lines": 13, "size": 900})

        _, event = _published(mock_get_redis)[0]
        self.assertEqual(event["type"], COMPLETE_EVENT)
        self.assertEqual(event["payload"]["progress"], 100)
        self.assertEqual(event["payload"]["duration"], 1500)
        self.assertEqual(event["payload"]["metrics"]["files"], 2)

    def test_publish_failure_returns_false(self, mock_get_redis):
        mock_get_redis.return_value.publish.side_effect = ConnectionError("redis down")

        self.assertFalse(publish_event(analysis_channel("abc"), PROGRESS_EVENT, {"progress": 1}))
        self.assertFalse(AnalysisProgressReporter("abc").file_status("a.py", "indexed"))


if __name__ == "__main__":
    unittest.main()
