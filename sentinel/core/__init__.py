"""
Core infrastructure modules for persistence, errors and utilities.
"""
