"""Exception types raised by the haplotype engine."""

from __future__ import annotations


class HapgraphError(Exception):
    """Base class for hapgraph errors."""


class ConfigurationError(HapgraphError, ValueError):
    """Invalid input that makes the whole run meaningless (fatal)."""


class StrandMismatchError(HapgraphError, AssertionError):
    """First and last variant of one bucket disagree on assembly strand."""


class SequenceExtractionError(HapgraphError, RuntimeError):
    """The sequence extractor did not return every requested span."""
