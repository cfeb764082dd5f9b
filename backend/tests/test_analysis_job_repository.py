import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from bson import ObjectId

from repo_insight.entities.analysis_job import AnalysisJob, AnalysisMetrics, FileIndexEntry
from repo_insight.repositories.analysis_job import AnalysisJobRepository
from repo_insight.utils.datetime import utc_now


class TestAnalysisJobRepository(unittest.TestCase):

    def setUp(self):
        self.db = MagicMock()
        self.repo = AnalysisJobRepository(self.db)
        self.collection = self.repo.collection
        self.job_id = str(ObjectId())

    def test_active_lock_index_is_unique_and_partial(self):
        calls = [c for c in self.collection.create_index.call_args_list if c.args[0] == [("active_lock", 1)]]

        self.assertEqual(len(calls), 1)
        self.assertTrue(calls[0].kwargs["unique"])
        self.assertEqual(
            calls[0].kwargs["partialFilterExpression"], {"active_lock": {"$type": "string"}}
        )

    def test_insert_pending_takes_active_lock(self):
        self.collection.insert_one.return_value.inserted_id = ObjectId()
        job = AnalysisJob(
            repository_id="42", owner="octocat", name="hello", full_name="octocat/hello", user_id="u1"
        )

        saved = self.repo.insert_pending(job)

        doc = self.collection.insert_one.call_args.args[0]
        self.assertEqual(doc["status"], "pending")
        self.assertEqual(doc["active_lock"], "octocat/hello/u1")
        self.assertNotIn("_id", doc)
        self.assertEqual(saved.id, self.collection.insert_one.return_value.inserted_id)

    def test_claim_only_moves_pending_jobs(self):
        self.collection.find_one_and_update.return_value = None

        self.assertIsNone(self.repo.claim_for_execution(self.job_id, "lease-1"))

        query, update = self.collection.find_one_and_update.call_args.args
        self.assertEqual(query["status"], "pending")
        self.assertEqual(update["$set"]["status"], "analyzing")
        self.assertEqual(update["$set"]["lease_token"], "lease-1")
        self.assertEqual(update["$inc"], {"version": 1})

    def test_completion_writes_status_and_results_in_one_update(self):
        self.collection.update_one.return_value.matched_count = 1
        metrics = AnalysisMetrics(file_count=1, total_lines=50)
        index = [FileIndexEntry(path="a.js", language="JavaScript", lines=50)]

        ok = self.repo.complete(self.job_id, "lease-1", "summary", metrics, index, 1234)

        self.assertTrue(ok)
        self.collection.update_one.assert_called_once()
        query, update = self.collection.update_one.call_args.args
        self.assertEqual(query["status"], "analyzing")
        self.assertEqual(query["lease_token"], "lease-1")
        fields = update["$set"]
        self.assertEqual(fields["status"], "completed")
        self.assertEqual(fields["summary"], "summary")
        self.assertEqual(fields["metrics"]["file_count"], 1)
        self.assertEqual(fields["file_index"][0]["path"], "a.js")
        self.assertEqual(fields["duration"], 1234)
        self.assertIn("active_lock", update["$unset"])
        self.assertIn("lease_token", update["$unset"])

    def test_completion_with_stale_lease_reports_false(self):
        self.collection.update_one.return_value.matched_count = 0

        ok = self.repo.complete(self.job_id, "old-lease", None, AnalysisMetrics(), [], 1)

        self.assertFalse(ok)

    def test_mark_stuck_failed_requires_idle_active_job(self):
        self.collection.update_one.return_value.modified_count = 1
        idle_since = utc_now() - timedelta(minutes=10)

        ok = self.repo.mark_stuck_failed(self.job_id, idle_since, "Analysis timed out after 10 minutes")

        self.assertTrue(ok)
        query, update = self.collection.update_one.call_args.args
        self.assertEqual(query["status"], {"$in": ["pending", "analyzing"]})
        self.assertEqual(query["updated_at"], {"$lte": idle_since})
        self.assertEqual(update["$set"]["status"], "failed")
        self.assertEqual(update["$set"]["error"], "Analysis timed out after 10 minutes")
        self.assertIn("active_lock", update["$unset"])

    def test_fail_without_lease_targets_any_active_job(self):
        self.collection.update_one.return_value.matched_count = 1

        self.repo.fail(self.job_id, "Superseded by a forced restart")

        query = self.collection.update_one.call_args.args[0]
        self.assertEqual(query["status"], {"$in": ["pending", "analyzing"]})
        self.assertNotIn("lease_token", query)

    def test_fail_with_lease_is_conditional_on_it(self):
        self.collection.update_one.return_value.matched_count = 1

        self.repo.fail(self.job_id, "boom", {"stack": "..."}, lease_token="lease-1")

        query, update = self.collection.update_one.call_args.args
        self.assertEqual(query["lease_token"], "lease-1")
        self.assertEqual(update["$set"]["error_details"], {"stack": "..."})

    def test_cleanup_only_deletes_terminal_jobs(self):
        self.collection.delete_many.return_value.deleted_count = 4

        deleted = self.repo.cleanup_old_analyses(days=30)

        self.assertEqual(deleted, 4)
        query = self.collection.delete_many.call_args.args[0]
        self.assertEqual(query["status"], {"$in": ["completed", "failed"]})
        self.assertIn("$lt", query["created_at"])

    def test_invalid_id_is_rejected(self):
        with self.assertRaises(ValueError):
            self.repo.heartbeat("not-an-id", "lease-1")


if __name__ == "__main__":
    unittest.main()
