"""Scheduled batch jobs: reconciliation and expiry notifications."""
