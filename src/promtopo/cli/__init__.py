"""Command line interface for promtopo."""
