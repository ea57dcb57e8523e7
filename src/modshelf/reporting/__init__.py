"""Sync run reports."""
