"""
Entry point for running the Helix CLI as a module.

Usage:
    python -m helix.cli simulate
    python -m helix.cli show --state state.json
    python -m helix.cli --help
"""
from .main import main

if __name__ == "__main__":
    main()
