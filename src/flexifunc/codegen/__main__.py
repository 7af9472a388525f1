"""Allow running flexifunc.codegen as a module.

This allows the CLI to be invoked as:
    python -m flexifunc.codegen
"""

from .cli import main

if __name__ == "__main__":
    main()
