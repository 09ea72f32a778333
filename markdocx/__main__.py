"""
Module entry point for: python -m markdocx

Allows running the converter directly as a module:
    python -m markdocx convert <input.md> [options]
    python -m markdocx batch <directory> [options]
    python -m markdocx serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
