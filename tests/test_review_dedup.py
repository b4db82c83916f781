import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.schemas.review import ReviewFinding
from app.services.review_dedup import deduplicate_findings, jaccard_similarity, normalize_text


def finding(id, title, **overrides):
    fields = {
        "id": id,
        "category": "text_improvement",
        "severity": "important",
        "title": title,
        "description": "",
        "target_ref": "experience",
    }
    fields.update(overrides)
    return ReviewFinding(**fields)


class NormalizationTests(unittest.TestCase):
    def test_normalize_text(self):
        self.assertEqual(normalize_text("  Add METRICS,  to   experience! "), "add metrics to experience")
        self.assertEqual(normalize_text(None), "")

    def test_jaccard_similarity(self):
        self.assertEqual(jaccard_similarity("a b c", "a b c"), 1.0)
        self.assertAlmostEqual(jaccard_similarity("a b", "b c"), 1 / 3)
        self.assertEqual(jaccard_similarity("", "anything"), 0.0)
        self.assertEqual(jaccard_similarity("!!!", "!!!"), 0.0)


class DeduplicateFindingsTests(unittest.TestCase):
    def test_same_current_value_is_a_duplicate(self):
        first = finding("a", "Add metrics to experience", current_value="Managed a team")
        second = finding("b", "Add quantifiable metrics to experience section", current_value="Managed a team")
        self.assertEqual(deduplicate_findings([first, second]), [first])

    def test_similar_titles_are_duplicates(self):
        first = finding("a", "Quantify achievements in your experience section")
        second = finding("b", "Quantify the achievements in your experience section")
        self.assertEqual(deduplicate_findings([first, second]), [first])

    def test_similar_descriptions_are_duplicates(self):
        description = "The summary is vague and does not mention years of experience or core technologies"
        first = finding("a", "Sharpen summary", description=description)
        second = finding("b", "Rewrite profile opener", description=description + ".")
        self.assertEqual(deduplicate_findings([first, second]), [first])

    def test_different_base_keys_are_never_compared(self):
        first = finding("a", "Add metrics to experience", current_value="Managed a team")
        other_target = finding("b", "Add metrics to experience", current_value="Managed a team", target_ref="summary")
        other_category = finding("c", "Add metrics to experience", category="add_content")
        result = deduplicate_findings([first, other_target, other_category])
        self.assertEqual([item.id for item in result], ["a", "b", "c"])

    def test_missing_target_uses_shared_none_key(self):
        first = finding("a", "Add a projects section", category="missing_section", target_ref=None)
        second = finding("b", "Add a projects section please", category="missing_section", target_ref=None)
        self.assertEqual([item.id for item in deduplicate_findings([first, second])], ["a"])

    def test_distinct_findings_are_kept_in_order(self):
        items = [
            finding("a", "Fix typo in job title", current_value="Sofware Engineer"),
            finding("b", "Quantify team size", current_value="Led engineers"),
            finding("c", "Use stronger verbs", current_value="Was responsible for deployments"),
        ]
        self.assertEqual(deduplicate_findings(items), items)

    def test_empty_values_never_match(self):
        first = finding("a", "!!!")
        second = finding("b", "???")
        self.assertEqual(len(deduplicate_findings([first, second])), 2)

    def test_idempotent(self):
        items = [
            finding("a", "Add metrics to experience", current_value="Managed a team"),
            finding("b", "Add quantifiable metrics to experience section", current_value="Managed a team"),
            finding("c", "Quantify achievements in your experience section"),
            finding("d", "Quantify the achievements in your experience section"),
            finding("e", "Add a GitHub link", category="add_content", target_ref="contact"),
        ]
        once = deduplicate_findings(items)
        self.assertEqual(deduplicate_findings(once), once)

    def test_input_is_not_modified(self):
        items = [finding("a", "Same title"), finding("b", "Same title")]
        snapshot = list(items)
        deduplicate_findings(items)
        self.assertEqual(items, snapshot)


if __name__ == "__main__":
    unittest.main()
