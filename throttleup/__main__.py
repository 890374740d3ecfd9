import sys

from throttleup.app.main import main

sys.exit(main())
