import sys

from travelguide.cli import main

sys.exit(main())
