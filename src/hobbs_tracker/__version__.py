"""Version information for hobbs-tracker."""

__version__ = "0.3.0"
__version_date__ = "2026-10-18"

__title__ = "hobbs_tracker"
__description__ = "Device ownership, flight session and Hobbs-time analytics for aircraft owners"
__url__ = "https://github.com/hobbs-tracker/hobbs-tracker"

__author__ = "Hobbs Tracker Contributors"

__license__ = "MIT"
__copyright__ = "Copyright 2026 Hobbs Tracker Contributors"

__all__ = [
    "__version__",
    "__version_date__",
    "__title__",
    "__description__",
    "__url__",
    "__author__",
    "__license__",
    "__copyright__",
]
