"""Synchronous checks that run before any record is created or job queued."""
