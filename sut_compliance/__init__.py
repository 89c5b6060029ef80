"""
SUT Compliance Engine.

Extracts structured billing rules from Turkish health-insurance price
lists and legislation, then checks billed procedure lines against them.
"""

__version__ = "0.1.0"
