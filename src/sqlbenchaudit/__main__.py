"""Allow ``python -m sqlbenchaudit``."""

from sqlbenchaudit.interface.cli import main

if __name__ == "__main__":
    main()
