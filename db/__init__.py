"""
Database package for the durable page cache.
"""
