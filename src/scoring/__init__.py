"""
Scoring Module

Pure calculations over GitHub activity: streaks, period summaries from
events, and the composite scores used by leaderboards and analytics.

Example Usage:
    from src.scoring import calculate_streaks, summarize_contributions

    streaks = calculate_streaks(contributions.calendar)
    totals = summarize_contributions(events)
"""

from .activity import (
    ACTIVITY_WEIGHTS,
    CONTRIBUTOR_WEIGHTS,
    RANKING_WEIGHTS,
    StreakResult,
    activity_patterns,
    activity_score,
    calculate_streaks,
    collaboration_metrics,
    contribution_diversity,
    contributor_score,
    count_event_contributions,
    daily_contribution_counts,
    events_in_range,
    overall_performance_score,
    overall_ranking_score,
    performance_averages,
    productivity_score,
    repository_metrics,
    repository_score,
    shannon_diversity,
    summarize_contributions,
    user_performance_scores,
)

__all__ = [
    "ACTIVITY_WEIGHTS",
    "CONTRIBUTOR_WEIGHTS",
    "RANKING_WEIGHTS",
    "StreakResult",
    "activity_patterns",
    "activity_score",
    "calculate_streaks",
    "collaboration_metrics",
    "contribution_diversity",
    "contributor_score",
    "count_event_contributions",
    "daily_contribution_counts",
    "events_in_range",
    "overall_performance_score",
    "overall_ranking_score",
    "performance_averages",
    "productivity_score",
    "repository_metrics",
    "repository_score",
    "shannon_diversity",
    "summarize_contributions",
    "user_performance_scores",
]
