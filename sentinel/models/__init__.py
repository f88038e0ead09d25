"""
Pydantic models for fingerprints, assets, monitoring sessions and alerts.
"""

from .fingerprint import *
from .monitoring import *
