"""
Usage:
    python -m plutohost [run|sync|index|check]
"""
import sys

from plutohost.cli.plutohostctl import main


if __name__ == "__main__":
    sys.exit(main())
