"""Prometheus instruments for the onboarding workflow."""

from __future__ import annotations

from prometheus_client import Counter

SUBMISSIONS = Counter(
    "onboarding_submissions_total",
    "Collaborator applications by outcome.",
    ["outcome"],
)

RESOLUTIONS = Counter(
    "onboarding_resolutions_total",
    "Collaborator request resolutions by decision and outcome.",
    ["decision", "outcome"],
)
