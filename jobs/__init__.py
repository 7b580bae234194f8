"""
Scheduled background jobs.
"""
