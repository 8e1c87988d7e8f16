"""Allow ``python -m shard_metrics``."""

import sys

from shard_metrics.cli import main

if __name__ == "__main__":
    sys.exit(main())
