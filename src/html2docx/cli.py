"""Command-line interface for html2docx.

Usage::

    html2docx page.html                        # writes page.docx
    html2docx page.html -o report.docx         # explicit output path
    html2docx page.html -t letterhead --extras # named template, extras
    html2docx page.html --header title=Report  # fill {{title}} in the header
    cat page.html | html2docx - -o page.docx   # read from stdin
    html2docx --list-templates                 # list available templates
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from html2docx import __version__
from html2docx.config import Settings
from html2docx.document import Document
from html2docx.errors import Html2DocxError
from html2docx.templates import list_templates


def _placeholder(value: str) -> tuple[str, str]:
    name, sep, text = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=TEXT, got {value!r}")
    return name, text


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="html2docx",
        description="Convert HTML to Word (.docx) using a template document.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        help="HTML file to convert, or - to read from stdin.",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output .docx path. Defaults to <input>.docx.",
    )
    parser.add_argument(
        "-t", "--template",
        help="Template name or path (default: the bundled default template).",
    )
    parser.add_argument(
        "--extras",
        action="store_true",
        help="Enable the extras stylesheet (alignment, highlights, page breaks).",
    )
    parser.add_argument(
        "--header",
        action="append",
        type=_placeholder,
        default=[],
        metavar="NAME=TEXT",
        help="Header placeholder value; may be repeated.",
    )
    parser.add_argument(
        "--footer",
        action="append",
        type=_placeholder,
        default=[],
        metavar="NAME=TEXT",
        help="Footer placeholder value; may be repeated.",
    )
    parser.add_argument(
        "-e", "--encoding",
        default="utf-8",
        help="Input file encoding (default: %(default)s).",
    )
    parser.add_argument(
        "--list-templates",
        action="store_true",
        help="List available templates and exit.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print progress information.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()

    if args.list_templates:
        print("Available templates:")
        for name in list_templates(settings):
            print(f"  - {name}")
        return 0

    if not args.input:
        parser.error("the following argument is required: input")

    if args.input == "-":
        html = sys.stdin.read()
        if not args.output:
            parser.error("--output is required when reading from stdin")
    else:
        input_path = Path(args.input)
        if not input_path.is_file():
            print(f"Error: file not found: {input_path}", file=sys.stderr)
            return 1
        html = input_path.read_text(encoding=args.encoding)

    # Determine output path
    if args.output:
        output_path = Path(args.output)
    else:
        output_path = input_path.with_suffix(".docx")

    if args.verbose:
        print(f"Input:    {args.input}")
        print(f"Output:   {output_path}")
        print(f"Template: {args.template or 'default'}")

    try:
        Document.create_and_save(
            html,
            output_path,
            args.template,
            args.extras,
            header=dict(args.header),
            footer=dict(args.footer),
            settings=settings,
        )
    except Html2DocxError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"Done. {output_path.stat().st_size} bytes written.")
    else:
        print(f"Converted: {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
