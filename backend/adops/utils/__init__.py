"""
Utility functions for the ad operations console.
"""

from adops.utils.keyed_lock import KeyedLock
from adops.utils.masking import mask_business_number, mask_email

__all__ = ["KeyedLock", "mask_business_number", "mask_email"]
