"""
Background jobs (RQ).
"""
