from __future__ import annotations

from datetime import datetime, timedelta, timezone

from codehelper.eligibility import (
    MIN_DAYS_REQUIRED,
    check_post_assessment_eligibility,
    post_assessment_message,
)

NOW = datetime(2024, 11, 30, tzinfo=timezone.utc)


def test_fresh_account_is_not_eligible() -> None:
    result = check_post_assessment_eligibility(NOW, 0, 0, now=NOW)
    assert result.is_eligible is False
    assert result.progress_percentage == 0
    assert post_assessment_message(result) == (
        "Complete 14 more days, 20 more questions, 5 more tasks to unlock post-assessment"
    )


def test_all_thresholds_met() -> None:
    registered = NOW - timedelta(days=MIN_DAYS_REQUIRED)
    result = check_post_assessment_eligibility(registered, 20, 5, now=NOW)
    assert result.is_eligible is True
    assert result.progress_percentage == 100
    assert post_assessment_message(result) == "You're ready for post-assessment!"


def test_progress_is_capped_per_criterion() -> None:
    registered = NOW - timedelta(days=60)
    result = check_post_assessment_eligibility(registered, 10, 0, now=NOW)
    # (100 + 50 + 0) / 3
    assert result.progress_percentage == 50
    assert result.is_eligible is False
    assert post_assessment_message(result) == "Complete 10 more questions, 5 more tasks to unlock post-assessment"


def test_singular_wording_and_naive_timestamps() -> None:
    registered = (NOW - timedelta(days=13)).replace(tzinfo=None)
    result = check_post_assessment_eligibility(registered, 19, 4, now=NOW)
    assert result.days_since_registration == 13
    assert post_assessment_message(result) == "Complete 1 more day, 1 more question, 1 more task to unlock post-assessment"
