"""Allow ``python -m workon``."""

import sys

from .cli import main

sys.exit(main())
