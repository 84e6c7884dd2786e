"""
Gift Explanation Study

A Flask-based within-subject experiment that shows participants three styles
of AI-generated gift-recommendation explanations in a counterbalanced order
and records their survey responses and interaction telemetry.
"""

__version__ = "1.0.0"
__author__ = "Research Team"
