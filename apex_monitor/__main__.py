import sys

from apex_monitor.cli import main

sys.exit(main())
