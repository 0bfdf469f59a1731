#!/usr/bin/env python3
"""
xiaozhi-setup CLI entry point.

Runs the provisioning engine and maps its result to the process exit code.
"""

from __future__ import annotations

from .engine import main as engine_main


def main() -> None:
    raise SystemExit(engine_main())


if __name__ == "__main__":
    main()
