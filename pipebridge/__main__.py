import sys

from pipebridge.main import main

sys.exit(main())
