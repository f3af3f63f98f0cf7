import sys

from kora_reclaim.cli import main

sys.exit(main())
