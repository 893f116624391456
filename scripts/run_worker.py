#!/usr/bin/env python3
# Polling worker entrypoint; same as `python -m tabletasks.cli worker`.
import sys

from tabletasks.cli import main

if __name__ == "__main__":
    main(["worker", *sys.argv[1:]])
