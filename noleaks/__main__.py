import sys

from noleaks.cli import main

sys.exit(main())
