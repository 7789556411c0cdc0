"""Watcher configuration and reconciliation loop."""
