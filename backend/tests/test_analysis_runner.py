import unittest
from unittest.mock import MagicMock, patch

from bson import ObjectId

from repo_insight.entities.analysis_job import AnalysisJob
from repo_insight.services.analysis_exceptions import AnalysisLeaseLostError
from repo_insight.services.analysis_runner import AnalysisRunner
from repo_insight.services.github.exceptions import GithubError
from repo_insight.services.summarizer import SummaryResult

EXPECTED_STEPS = [
    "initializing",
    "git-setup",
    "repo-structure",
    "repo-structure-complete",
    "file-indexing",
    "file-index-complete",
    "metrics",
    "ai-summary",
    "saving",
]


def make_job():
    return AnalysisJob(
        id=ObjectId(),
        repository_id="42",
        owner="octocat",
        name="hello",
        full_name="octocat/hello",
        user_id="user-1",
        status="analyzing",
    )


class AnalysisRunnerTestCase(unittest.TestCase):

    def setUp(self):
        patcher = patch("repo_insight.services.analysis_runner.AnalysisJobRepository")
        self.MockRepo = patcher.start()
        self.addCleanup(patcher.stop)
        self.repo = self.MockRepo.return_value

        self.job = make_job()
        self.analysis_id = str(self.job.id)
        self.repo.claim_for_execution.return_value = self.job
        self.repo.heartbeat.return_value = True
        self.repo.complete.return_value = True

        self.github = MagicMock()
        self.github.__enter__.return_value = self.github
        self.github.list_tree.return_value = (
            [
                {"path": "src/app.py", "size": 100, "sha": "a"},
                {"path": "node_modules/x.js", "size": 100, "sha": "b"},
                {"path": "logo.png", "size": 800, "sha": "c"},
            ],
            "master",
        )
        self.github.read_file.return_value = "import os\nprint(os.name)\n"
        self.github_factory = MagicMock(return_value=self.github)

        self.summarizer = MagicMock()
        self.summarizer.summarize.return_value = SummaryResult(
            success=True, content="## 1. Project Overview", provider="gateway"
        )

    def runner(self):
        return AnalysisRunner(MagicMock(), github_factory=self.github_factory, summarizer=self.summarizer)


class TestAnalysisRunner(AnalysisRunnerTestCase):

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_successful_run_completes_with_results(self, MockReporter):
        reporter = MockReporter.return_value

        result = self.runner().run(self.analysis_id)

        self.assertEqual(result["status"], "completed")
        self.github.read_file.assert_called_once_with("octocat", "hello", "src/app.py", "master")

        args, kwargs = self.repo.complete.call_args
        self.assertEqual(args[0], self.analysis_id)
        self.assertEqual(args[1], self.repo.claim_for_execution.call_args.args[1])
        self.assertEqual(kwargs["summary"], "## 1. Project Overview")
        self.assertEqual(kwargs["metrics"].file_count, 2)
        self.assertEqual(kwargs["metrics"].total_lines, 3 + 10)
        self.assertEqual([e.path for e in kwargs["file_index"]], ["src/app.py", "logo.png"])

        steps = [c.args[0] for c in reporter.progress.call_args_list]
        self.assertEqual(steps, EXPECTED_STEPS)
        progress = [c.args[2] for c in reporter.progress.call_args_list]
        self.assertEqual(progress, [0, 10, 20, 30, 40, 70, 75, 85, 95])

        duration, metrics = reporter.complete.call_args.args
        self.assertEqual(metrics, {"files": 2, "lines": 13, "size": 900})
        self.assertEqual(duration, kwargs["duration"])
        reporter.error.assert_not_called()
        self.repo.fail.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_summarizer_failure_still_completes(self, MockReporter):
        self.summarizer.summarize.return_value = SummaryResult(success=False, error="no API key")

        result = self.runner().run(self.analysis_id)

        self.assertEqual(result["status"], "completed")
        self.assertFalse(result["summary_generated"])
        self.assertIsNone(self.repo.complete.call_args.kwargs["summary"])
        self.repo.fail.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_summarizer_exception_still_completes(self, MockReporter):
        self.summarizer.summarize.side_effect = RuntimeError("gateway timeout")

        self.runner().run(self.analysis_id)

        self.assertIsNone(self.repo.complete.call_args.kwargs["summary"])

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_listing_failure_fails_job_and_publishes_error(self, MockReporter):
        reporter = MockReporter.return_value
        self.github.list_tree.side_effect = GithubError("tree unavailable")

        with self.assertRaises(GithubError):
            self.runner().run(self.analysis_id)

        args, kwargs = self.repo.fail.call_args
        self.assertEqual(args, (self.analysis_id, "tree unavailable"))
        self.assertEqual(kwargs["lease_token"], self.repo.claim_for_execution.call_args.args[1])
        self.assertEqual(set(kwargs["error_details"]), {"stack", "timestamp", "duration"})
        self.assertIn("GithubError", kwargs["error_details"]["stack"])
        reporter.error.assert_called_once_with("tree unavailable")
        self.repo.complete.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_job_not_pending_is_not_executed(self, MockReporter):
        self.repo.claim_for_execution.return_value = None

        result = self.runner().run(self.analysis_id)

        self.assertEqual(result["status"], "skipped")
        self.github_factory.assert_not_called()
        MockReporter.assert_not_called()
        self.repo.complete.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_lost_lease_stops_without_writing(self, MockReporter):
        self.repo.heartbeat.side_effect = [True, True, False]

        with self.assertRaises(AnalysisLeaseLostError):
            self.runner().run(self.analysis_id)

        self.repo.fail.assert_not_called()
        self.repo.complete.assert_not_called()
        MockReporter.return_value.error.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_rejected_completion_raises_lease_lost(self, MockReporter):
        self.repo.complete.return_value = False

        with self.assertRaises(AnalysisLeaseLostError):
            self.runner().run(self.analysis_id)

        MockReporter.return_value.complete.assert_not_called()

    @patch("repo_insight.tasks.shared.events.get_redis")
    def test_publish_failures_do_not_affect_job(self, mock_get_redis):
        mock_get_redis.return_value.publish.side_effect = ConnectionError("redis down")

        result = self.runner().run(self.analysis_id)

        self.assertEqual(result["status"], "completed")
        self.repo.complete.assert_called_once()
        self.repo.fail.assert_not_called()

    @patch("repo_insight.services.analysis_runner.AnalysisProgressReporter")
    def test_stored_file_index_is_bounded(self, MockReporter):
        self.github.list_tree.return_value = (
            [{"path": f"f{i}.bin", "size": 80, "sha": str(i)} for i in range(1005)],
            "main",
        )

        result = self.runner().run(self.analysis_id)

        kwargs = self.repo.complete.call_args.kwargs
        self.assertEqual(len(kwargs["file_index"]), 1000)
        self.assertEqual(kwargs["metrics"].file_count, 1005)
        self.assertEqual(result["files"], 1005)


if __name__ == "__main__":
    unittest.main()
