"""Allow running the CLI with ``python -m imgstore``."""

import sys

from imgstore.cli import main

sys.exit(main())
