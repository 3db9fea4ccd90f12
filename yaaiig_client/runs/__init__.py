"""Append-only task lifecycle log."""
