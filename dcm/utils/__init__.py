"""
Utility modules for the placement compiler
"""
from .validators import require_int, require_non_negative_ints, require_bound

__all__ = ['require_int', 'require_non_negative_ints', 'require_bound']
