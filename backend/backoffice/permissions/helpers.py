# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS


def get_all_permission_keys():
    """Get list of all permission keys."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_key(key):
    """Check if a permission key is valid."""
    return key in get_all_permission_keys()
