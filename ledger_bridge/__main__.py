import sys

from ledger_bridge.cli import main

sys.exit(main())
