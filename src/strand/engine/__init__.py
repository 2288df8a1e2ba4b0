"""Engine helpers for Strand."""

from strand.engine.tokens import CharEstimateCounter, NullTokenCounter, TiktokenCounter

__all__ = ["CharEstimateCounter", "NullTokenCounter", "TiktokenCounter"]
