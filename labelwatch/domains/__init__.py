"""Functional domains of LabelWatch."""
