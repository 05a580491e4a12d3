"""Entry point for ``python -m reader_preload``."""

import sys

from reader_preload.cli import main

sys.exit(main())
