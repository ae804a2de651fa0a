import sys

from am_presence.main import main

sys.exit(main())
