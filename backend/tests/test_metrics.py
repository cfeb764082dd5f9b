import unittest

from repo_insight.entities.analysis_job import FileIndexEntry
from repo_insight.services.metrics import LARGEST_FILES_LIMIT, calculate_metrics


def _entry(path, language, size, lines):
    return FileIndexEntry(path=path, language=language, size=size, lines=lines)


class TestCalculateMetrics(unittest.TestCase):

    def test_totals_match_index(self):
        index = [
            _entry("a.py", "Python", 100, 10),
            _entry("b.py", "Python", 300, 30),
            _entry("c.ts", "TypeScript", 200, 60),
        ]

        metrics = calculate_metrics(index)

        self.assertEqual(metrics.file_count, len(index))
        self.assertEqual(metrics.total_lines, sum(e.lines for e in index))
        self.assertEqual(metrics.total_size, 600)
        self.assertEqual(metrics.language_count, 2)
        self.assertEqual(metrics.languages["Python"].files, 2)
        self.assertAlmostEqual(metrics.languages["Python"].percentage, 40.0)
        self.assertAlmostEqual(metrics.languages["TypeScript"].percentage, 60.0)

    def test_language_percentages_sum_to_hundred(self):
        index = [
            _entry(f"f{i}.{ext}", lang, 10, lines)
            for i, (ext, lang, lines) in enumerate(
                [("py", "Python", 7), ("go", "Go", 11), ("rs", "Rust", 13), ("c", "C", 3)]
            )
        ]

        metrics = calculate_metrics(index)

        total = sum(stats.percentage for stats in metrics.languages.values())
        self.assertAlmostEqual(total, 100.0, places=6)

    def test_largest_files_are_top_twenty_by_size(self):
        index = [_entry(f"f{i}.py", "Python", i * 10, 1) for i in range(25)]
        original_order = [e.path for e in index]

        metrics = calculate_metrics(index)

        self.assertEqual(len(metrics.largest_files), LARGEST_FILES_LIMIT)
        self.assertEqual(metrics.largest_files[0].path, "f24.py")
        sizes = [e.size for e in metrics.largest_files]
        self.assertEqual(sizes, sorted(sizes, reverse=True))
        self.assertEqual([e.path for e in index], original_order)

    def test_equal_sizes_keep_index_order(self):
        index = [_entry("first.py", "Python", 50, 1), _entry("second.py", "Python", 50, 1)]
        metrics = calculate_metrics(index)
        self.assertEqual([e.path for e in metrics.largest_files], ["first.py", "second.py"])

    def test_empty_index(self):
        metrics = calculate_metrics([])

        self.assertEqual(metrics.file_count, 0)
        self.assertEqual(metrics.total_lines, 0)
        self.assertEqual(metrics.languages, {})
        self.assertEqual(metrics.largest_files, [])

    def test_zero_line_files_get_zero_percentage(self):
        metrics = calculate_metrics([_entry("empty.py", "Python", 0, 0)])
        self.assertEqual(metrics.languages["Python"].percentage, 0.0)


if __name__ == "__main__":
    unittest.main()
