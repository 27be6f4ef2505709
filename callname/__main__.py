import sys

from callname.cli import main

sys.exit(main())
