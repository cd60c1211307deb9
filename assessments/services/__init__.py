"""Persistence-aware services: assignment lifecycle, scoring, grading, statistics."""
