"""Allow ``python -m discord_bridge``."""

from discord_bridge.cli import main

if __name__ == "__main__":
    main()
