"""taskdeck entry point for `python -m main` inside `src/`.

Same behaviour as the installed `taskdeck` script.
"""

from __future__ import annotations

import sys

# The task table and toasts print ✔ and ✓; cp1252 consoles cannot encode them.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
