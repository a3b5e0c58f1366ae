"""Package entry point for ``python -m clipwise``.

Delegates to the CLI's main() so ``python -m clipwise input.mp4`` and the
``clipwise`` console script behave the same.
"""

from clipwise.cli import main

if __name__ == "__main__":
    main()
