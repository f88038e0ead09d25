"""
Fingerprinting, matching, crawling and monitoring services.
"""
