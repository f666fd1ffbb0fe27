"""
Package Pricing

Price calculation core for tour and experience packages.
Resolves a booking's price through base tier pricing, seasonal, group,
time-based and promotional adjustments, plus add-ons, and validates
booking compositions and departure availability.
"""

__version__ = "1.0.0"
