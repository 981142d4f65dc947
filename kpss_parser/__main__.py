"""
Module entry point for: python -m kpss_parser

Allows running the pipeline directly as a module:
    python -m kpss_parser run <directory> [options]
    python -m kpss_parser fetch [--check]
    python -m kpss_parser serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
