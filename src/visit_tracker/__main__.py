"""Allow ``python -m visit_tracker``."""

import sys

from .cli import main

sys.exit(main())
