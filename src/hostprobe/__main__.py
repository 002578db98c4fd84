import sys

from hostprobe.app import main

sys.exit(main())
