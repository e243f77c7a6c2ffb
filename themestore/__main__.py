"""Entry point for `python -m themestore`."""

import sys


def main():
    from themestore.app import run_app
    sys.exit(run_app())


if __name__ == "__main__":
    main()
