"""Shared helpers for logging and environment parsing."""
