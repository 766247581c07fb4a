"""Instruction-driven, reversible file and git operations planned by a language model."""

__version__ = "0.1.0"
