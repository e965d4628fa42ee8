import sys

from musicmatch.cli import main

sys.exit(main())
