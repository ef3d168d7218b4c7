"""Allow ``python -m afexplot``."""

import sys

from .cli import main


sys.exit(main())
