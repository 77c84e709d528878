"""Allow running as `python -m wotcalc`."""

from wotcalc.cli import main

if __name__ == "__main__":
    main()
