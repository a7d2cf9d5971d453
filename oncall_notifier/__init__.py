"""Polls a PagerDuty schedule and notifies you when your on-call shift starts."""
