"""Shared utilities: configuration and helpers."""
