#!/usr/bin/env python3
"""Thin wrapper so the runner can be invoked as a script."""

from codebrief.runner import main


if __name__ == "__main__":
    raise SystemExit(main())
