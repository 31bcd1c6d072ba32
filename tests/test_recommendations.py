"""
Recommendation generation from failed and partial checks.
"""
from agent_pulse.models import CheckStatus, Priority, ValidationResult
from agent_pulse.rubric import build_check
from agent_pulse.services.recommendations import TEMPLATES, generate_recommendations


class TestGenerateRecommendations:

    def test_only_non_passing_measured_checks(self):
        checks = [
            build_check("D1", CheckStatus.PASS, 12, ""),
            build_check("N1", CheckStatus.SKIPPED, 0, "", max_score=0),
            build_check("D4", CheckStatus.FAIL, 0, ""),
        ]
        recs = generate_recommendations(checks)
        assert [r.check_id for r in recs] == ["D4"]
        assert recs[0].check_name == "llms.txt"

    def test_sorted_by_priority_with_stable_ties(self):
        checks = [
            build_check("D4", CheckStatus.FAIL, 0, ""),      # low
            build_check("R2", CheckStatus.PARTIAL, 3, ""),   # high
            build_check("T2", CheckStatus.FAIL, 0, ""),      # critical
            build_check("T1", CheckStatus.PARTIAL, 10, ""),  # high
        ]
        recs = generate_recommendations(checks)
        assert [r.check_id for r in recs] == ["T2", "R2", "T1", "D4"]
        assert recs[0].priority == Priority.CRITICAL

    def test_validation_details_appended(self):
        checks = [build_check("D2", CheckStatus.PARTIAL, 7, "")]
        validation = ValidationResult(found=True, missing_fields=["image"], invalid_fields=["gtin (bad)"])

        rec = generate_recommendations(checks, {"D2": validation})[0]

        assert rec.description == TEMPLATES["D2"].description + " Missing: image. Invalid: gtin (bad)."

    def test_checks_without_template_are_ignored(self):
        checks = [build_check("P1", CheckStatus.FAIL, 0, ""), build_check("P3", CheckStatus.FAIL, 0, "")]
        assert [r.check_id for r in generate_recommendations(checks)] == ["P3"]

    def test_robots_fix_lists_ai_bots(self):
        assert "User-agent: GPTBot\nAllow: /" in TEMPLATES["D1"].how_to_fix
