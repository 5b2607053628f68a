# cli.py: run the converter from a source checkout
#
#   python cli.py tracebytecodes.out --granularity 25 > tracebytecodes.stacks
#
# Installed copies use the `bytestacks` console script (bytestacks.cli:main).

import sys

from bytestacks.cli import main

if __name__ == "__main__":
    sys.exit(main())
