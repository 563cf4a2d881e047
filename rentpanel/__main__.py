import sys

from rentpanel.cli import main

sys.exit(main())
