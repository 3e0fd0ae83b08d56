import sys

from blemirror.cli import main

sys.exit(main())
