"""
Sentinel - Perceptual Fingerprint Monitoring Engine

Derives perceptual hashes from protected images, matches re-encoded copies
by Hamming distance and runs monitoring scans against risk sites.
"""

__version__ = "1.0.0"
__author__ = "Sentinel Team"
__description__ = "Perceptual Fingerprint Monitoring Engine"
