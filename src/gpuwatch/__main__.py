"""Allow ``python -m gpuwatch``."""

import sys

from gpuwatch._cli import main

sys.exit(main())
