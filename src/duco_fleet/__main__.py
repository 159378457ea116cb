"""Allow running the fleet with ``python -m duco_fleet``."""

from duco_fleet.cli import main

if __name__ == "__main__":
    main()
