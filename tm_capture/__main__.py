"""Allow ``python -m tm_capture`` to launch the capture CLI."""

from __future__ import annotations

import sys


def main() -> None:
    from tm_capture import run

    run(sys.argv[1:])


if __name__ == "__main__":
    main()
