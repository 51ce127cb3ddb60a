"""
Methods registry for automatic calculation method discovery.

This module provides automatic registration of calculation methods by
introspecting BaseMethod subclasses in the growthref.methods submodules.
"""

from typing import Dict, Type
from .base import BaseMethod, Score


# Import method modules to register subclasses
from .lms import method as lms_method
from .table import method as table_method


def _build_registry() -> Dict[str, Type[BaseMethod]]:
    """Build the registry by discovering BaseMethod subclasses."""
    registry = {}
    for cls in BaseMethod.__subclasses__():
        # Derive method name from class name: LMSMethod -> 'lms'
        method_name = cls.__name__.replace("Method", "").lower()
        registry[method_name] = cls
    return registry


# Global registry instance
registry = _build_registry()

__all__ = ["registry", "BaseMethod", "Score", "lms_method", "table_method"]
