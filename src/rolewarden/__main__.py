"""Allow running as `python -m rolewarden`."""

from rolewarden.entrypoints.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
