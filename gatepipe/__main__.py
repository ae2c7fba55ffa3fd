"""Allow `python -m gatepipe`."""

import sys

from gatepipe.cli import main

if __name__ == "__main__":
    sys.exit(main())
