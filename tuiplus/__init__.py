"""Parsers and collectors for CPU, GPU, memory, disk, network, process and service readings."""

__version__ = "1.0.0"