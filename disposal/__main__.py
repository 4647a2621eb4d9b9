"""Allow ``python -m disposal``."""

import sys

from .cli.main import main

sys.exit(main())
