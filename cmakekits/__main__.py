"""
Entry point for running CMakeKits as a module.

Usage: python -m cmakekits [command] [options]
"""

from cmakekits.cli.parser import main

if __name__ == "__main__":
    main()
