"""
Mapping build outputs to destinations in the consumer project.
"""

from .packages import PackageLocator
from .path_resolver import PACKAGE_NAMESPACE, OutputPathResolver

__all__ = [
    "PACKAGE_NAMESPACE",
    "OutputPathResolver",
    "PackageLocator",
]
