"""Gauges, samplers, tag validation and a batching metrics processor for game servers."""

__version__ = "0.1.0"

__all__ = ["gauge", "model", "processor", "registry", "samplers"]