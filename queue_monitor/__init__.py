"""
Queue-depth-driven worker autoscaler.

This package polls broker queue depths on an interval, decides how many
workers should be running from configurable thresholds, and applies that
decision through a pluggable scaling executor.
"""

__version__ = "0.1.0"
