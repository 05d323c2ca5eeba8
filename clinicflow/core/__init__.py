"""
Core layer - DDD building blocks and shared utilities.
"""
