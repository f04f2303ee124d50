"""Allow ``python -m sonarcloud_mcp``."""

import sys

from .cli import main

sys.exit(main())
