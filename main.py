"""Entry point for the tasktimer time tracker.

Running this file behaves exactly like the installed ``tasktimer`` command:
it parses the command line, opens the SQLite database and prints the JSON
result of the requested operation.
"""

import sys

from tasktimer.cli import main


if __name__ == "__main__":
    sys.exit(main())
