import sys

from chartstate.cli import main

sys.exit(main())
