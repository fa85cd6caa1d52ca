"""CLI entry point for portraitly.cli module.

Enables execution via: python -m portraitly.cli
(equivalent to: python -m portraitly.cli.generate)
"""

from portraitly.cli.generate import main

if __name__ == "__main__":
    main()
