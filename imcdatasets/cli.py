"""Command-line interface for imcdatasets.

Usage::

    imcdatasets list
    imcdatasets describe Damond_2019_Pancreas
    imcdatasets download Damond_2019_Pancreas --data-type masks
    imcdatasets cache-status

``python -m imcdatasets`` is equivalent.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_CACHE_ROOT, ENV_CACHE_DIR, HubConfig
from .errors import (
    ArtifactIntegrityError,
    ConfigurationError,
    RemoteStoreError,
    RequestValidationError,
)
from .hub import HubClient
from .registry import DATA_TYPES, LATEST, Catalog, load_catalog
from .validation import RetrievalRequest

logger = logging.getLogger("imcdatasets.cli")

EXIT_OK = 0
EXIT_REQUEST_ERROR = 1
EXIT_REMOTE_ERROR = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print a simple aligned table to stdout."""
    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            col_widths[i] = max(col_widths[i], len(cell))
    fmt = "  ".join(f"{{:<{w}}}" for w in col_widths)
    print(fmt.format(*headers))
    print(fmt.format(*("-" * w for w in col_widths)))
    for row in rows:
        print(fmt.format(*row))


def _client(args: argparse.Namespace, catalog: Catalog) -> HubClient:
    config = HubConfig.from_env()
    if args.cache_root:
        config = config.with_overrides(cache_root=Path(args.cache_root))
    return HubClient(catalog, config)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_list(args: argparse.Namespace) -> int:  # noqa: ARG001
    """List all registered datasets."""
    table = load_catalog().list_all()
    rows = [
        [
            str(r["name"]),
            _truncate(str(r["species"]), 10),
            _truncate(str(r["tissue"]), 22),
            f"{int(r['cell_count']):,}",
            str(r["image_count"]),
            str(r["channel_count"]),
        ]
        for _, r in table.iterrows()
    ]
    _print_table(["DATASET", "SPECIES", "TISSUE", "CELLS", "IMAGES", "CHANNELS"], rows)
    return EXIT_OK


def _cmd_describe(args: argparse.Namespace) -> int:
    """Show detailed metadata for a single dataset."""
    catalog = load_catalog()
    entry = catalog.describe(args.dataset)
    m = entry.metadata
    lines = [
        f"Dataset:     {entry.name}",
        f"Title:       {m.title}",
        f"Versions:    {', '.join(entry.available_versions)} (latest: {entry.latest_version})",
        f"Data types:  {', '.join(t for t in DATA_TYPES if t in entry.available_data_types)}",
    ]
    if entry.variants:
        lines.append(
            f"Variants:    {', '.join(entry.variants)} "
            f"({entry.variant_label}, default: {entry.default_variant})"
        )
    if m.author:
        lines.append(f"Author:      {m.author}")
    if m.doi:
        lines.append(f"DOI:         https://doi.org/{m.doi}")
    if m.source_url:
        lines.append(f"Source:      {m.source_url}")
    lines.append(f"License:     {m.license}")

    lines.append("")
    lines.append(textwrap.fill(m.description, width=78))
    lines.append("")
    lines.append("Citation:")
    lines.append(textwrap.fill(f"  {m.citation}", width=78))

    print("\n".join(lines))
    return EXIT_OK


def _cmd_download(args: argparse.Namespace) -> int:
    """Download one artifact into the local cache and print its path."""
    from .resolver import DatasetResolver

    catalog = load_catalog()
    resolver = DatasetResolver(catalog, _client(args, catalog))
    request = resolver.validate(
        RetrievalRequest(
            dataset=args.dataset,
            data_type=args.data_type,
            version=args.version,
            force=bool(args.force),
            variant=args.variant,
        )
    )
    path = resolver.client.fetch(request.cache_key, force=request.force)
    print(path)
    return EXIT_OK


def _cmd_cache_status(args: argparse.Namespace) -> int:
    """Show cache status for every declared artifact."""
    catalog = load_catalog()
    client = _client(args, catalog)
    rows: list[list[str]] = []
    for key in catalog.keys(args.dataset):
        cached = "yes" if client.is_cached(key) else "no"
        rows.append([key.dataset, key.version, key.stem, cached, str(client.cache_path(key))])
    _print_table(["DATASET", "VERSION", "ARTIFACT", "CACHED", "PATH"], rows)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="imcdatasets",
        description="Browse and download curated imaging mass cytometry datasets",
    )
    p.add_argument(
        "--cache-root",
        default=None,
        help=f"Cache directory (default: ${ENV_CACHE_DIR} or {DEFAULT_CACHE_ROOT})",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    sub = p.add_subparsers(dest="command")

    # list
    sub.add_parser("list", help="List all registered datasets")

    # describe
    desc_p = sub.add_parser("describe", help="Show detailed dataset metadata")
    desc_p.add_argument("dataset", help="Dataset name")

    # download
    dl_p = sub.add_parser("download", help="Download one dataset artifact")
    dl_p.add_argument("dataset", help="Dataset name")
    dl_p.add_argument(
        "--data-type",
        required=True,
        choices=DATA_TYPES,
        help="Artifact to download",
    )
    dl_p.add_argument("--version", default=LATEST, help="Dataset version (default: latest)")
    dl_p.add_argument("--variant", default=None, help="Dataset sub-variant, if any")
    dl_p.add_argument(
        "--force",
        action="store_true",
        help="Force re-download even if cached",
    )

    # cache-status
    cs_p = sub.add_parser("cache-status", help="Show cache status for all artifacts")
    cs_p.add_argument("dataset", nargs="?", default=None, help="Limit to one dataset")

    return p


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point. Returns exit code."""
    from .logging import setup_logging

    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(level=args.log_level)
    except ValueError:
        parser.error(f"unknown log level {args.log_level!r}")

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    dispatch = {
        "list": _cmd_list,
        "describe": _cmd_describe,
        "download": _cmd_download,
        "cache-status": _cmd_cache_status,
    }
    handler = dispatch[args.command]
    try:
        return handler(args)
    except (RequestValidationError, ConfigurationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_REQUEST_ERROR
    except (RemoteStoreError, ArtifactIntegrityError) as exc:
        logger.error("download failed: %s", exc)
        return EXIT_REMOTE_ERROR
