"""Reporting boundary: the run summary document."""

from review_router.report.summary import RunSummary, SkippedAgentRow, SummaryStats

__all__ = ["RunSummary", "SkippedAgentRow", "SummaryStats"]
