"""Narrative text generation."""
