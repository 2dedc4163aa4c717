"""
Package entry point for python -m execution.

USAGE:
    python -m hobbs_tracker dashboard            # Launch web dashboard
    python -m hobbs_tracker report --user ID     # Print fleet report
    python -m hobbs_tracker export --user ID     # Write sessions CSV
"""

import sys

from hobbs_tracker.cli import main

if __name__ == "__main__":
    sys.exit(main())
