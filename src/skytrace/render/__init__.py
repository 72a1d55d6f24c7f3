"""Presentation mapping and rendering sinks."""
