"""Command-line interface for html2print."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .version import __version__


def _get_usage() -> str:
    return (
        f"html2print {__version__}\n"
        "Usage:\n"
        "  html2print [--help] [--version|--ver]\n"
        "  html2print --input FILE --root ID [--root ID ...] --to-dir TO_DIR [options]\n\n"
        "Options:\n"
        "  --name NAME                  Output name (default: root id or combined-reports)\n"
        "  --title TITLE                Document title metadata (default: name)\n"
        "  --author AUTHOR              Document author metadata\n"
        "  --subject SUBJECT            Document subject metadata\n"
        "  --heading-scope SCOPE        Heading dedup scope: root (default) or document\n"
        "  --config PATH                Use configuration JSON\n"
        "  --write-config PATH          Write the default configuration JSON and exit\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--input", help="HTML document containing the report elements")
    parser.add_argument(
        "--root",
        action="append",
        default=[],
        help="Element id to print; repeat to combine several reports, one per page run",
    )
    parser.add_argument("--to-dir", help="Output directory")
    parser.add_argument("--name", help="Output file name without extension")
    parser.add_argument("--title", help="Document title metadata")
    parser.add_argument("--author", help="Document author metadata")
    parser.add_argument("--subject", help="Document subject metadata")
    parser.add_argument(
        "--heading-scope",
        choices=("root", "document"),
        default=None,
        help="Scope of heading de-duplication across combined reports (default: root)",
    )
    parser.add_argument("--config", help="Path to a configuration JSON file")
    parser.add_argument("--write-config", help="Write the default configuration JSON to the given path and exit")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _default_name(root_ids: list[str]) -> str:
    if len(root_ids) == 1:
        return root_ids[0]
    return "combined-reports"


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit:
        print(_get_usage())
        return 2
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    try:
        from html2print import core
    except Exception as exc:
        print(f"Unable to import html2print core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.verbose, args.debug)

    if args.write_config:
        target = Path(args.write_config).expanduser().resolve()
        try:
            core.write_config_file(target)
        except Exception as exc:
            print(f"Unable to write config file {target}: {exc}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        if args.verbose:
            print(f"Default configuration written to {target}")
        return 0

    if not args.input or not args.root or not args.to_dir:
        print(_get_usage())
        print("Options --input, --root and --to-dir are required unless --write-config or --version/--ver is used", file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    input_path = Path(args.input).expanduser().resolve()
    to_dir = Path(args.to_dir).expanduser().resolve()

    if not input_path.exists() or not input_path.is_file():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    if to_dir.exists() and not to_dir.is_dir():
        print(f"Output path is not a directory: {to_dir}", file=sys.stderr)
        return core.EXIT_OUTPUT_DIR

    config = core.ExtractionConfig()
    if args.config:
        config_path = Path(args.config).expanduser().resolve()
        if not config_path.exists() or not config_path.is_file():
            print(f"Config file not found: {config_path}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        try:
            config = core.load_config_file(config_path)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return core.EXIT_INVALID_ARGS

    if args.heading_scope:
        config.heading_scope = args.heading_scope
    if args.author is not None:
        config.author = args.author
    if args.subject is not None:
        config.subject = args.subject

    root_ids = [root_id.strip() for root_id in args.root if root_id.strip()]
    if not root_ids:
        print("Option --root requires a non-empty element id", file=sys.stderr)
        return core.EXIT_INVALID_ARGS
    name = args.name or _default_name(root_ids)
    title = args.title or name

    try:
        core.run_print_pipeline(
            input_path=input_path,
            root_ids=root_ids,
            out_dir=to_dir,
            name=name,
            title=title,
            config=config,
        )
    except (core.RootNotFoundError, core.EmptyResultError) as exc:
        print(str(exc), file=sys.stderr)
        return core.EXIT_NOT_FOUND
    except core.RenderingError as exc:
        print(f"Rendering failed: {exc}", file=sys.stderr)
        return core.EXIT_RENDERING
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
