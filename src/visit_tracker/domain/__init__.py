"""Domain layer for Visit Tracker.

Contains pure tracking rules, value objects and the error taxonomy.
This layer has no dependencies on infrastructure concerns.
"""
