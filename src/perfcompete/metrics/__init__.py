"""Metric model for perfcompete.

Units and unit scales, percentile-based calculators, the metric catalog,
and the per-target metric values with their union algebra.
"""
