"""CLI entry point for the contact kernel.

Usage:
    contact-kernel top 25                   # Print the 25 highest scored contacts
    contact-kernel top 10 --category Investors
    contact-kernel top 10 --rescore         # Recompute scores before ranking
    contact-kernel score                    # Recompute and persist all scores
    contact-kernel import contacts.csv      # Import a Google Contacts export
    contact-kernel metrics                  # Print the outreach summary
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from contact_kernel.core.config import KernelConfig
from contact_kernel.core.context import KernelContext
from contact_kernel.core.errors import ContactKernelError
from contact_kernel.core.logging import configure_logging
from contact_kernel.importers.google_contacts import (
    import_contacts,
    parse_google_contacts_csv,
)
from contact_kernel.models.graph import EntityKind


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per command."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in the working directory)",
    )

    parser = argparse.ArgumentParser(
        description="Contact graph, importance scoring and outreach tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    top_parser = subparsers.add_parser(
        "top", parents=[common], help="Print the top N contacts by score"
    )
    top_parser.add_argument("n", metavar="N", help="Number of contacts to print")
    top_parser.add_argument(
        "--category",
        default=None,
        help="Only rank contacts filed under this category",
    )
    top_parser.add_argument(
        "--rescore",
        action="store_true",
        help="Recompute and persist scores before ranking",
    )

    subparsers.add_parser(
        "score", parents=[common], help="Recompute and persist all scores"
    )

    import_parser = subparsers.add_parser(
        "import", parents=[common], help="Import a Google Contacts CSV export"
    )
    import_parser.add_argument("csv_path", type=Path, metavar="CSV")

    subparsers.add_parser(
        "metrics", parents=[common], help="Print the outreach summary"
    )

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def get_env_file(args: argparse.Namespace) -> Optional[Path]:
    """Get the .env file path from args or the working directory."""
    env_file = args.env_file or Path(".env")
    return env_file if env_file.exists() else None


def _format_row(row: dict) -> str:
    parts = [
        f"{row['rank']:>3}.",
        row["name"],
        f"score={row['score']}",
        row["email"] or "-",
    ]
    if row["organization"]:
        parts.append(row["organization"])
    if row["category"]:
        parts.append(f"[{row['category']}]")
    return "  ".join(parts)


def cmd_top(args: argparse.Namespace, ctx: KernelContext) -> int:
    """Print the top-N rows. Exit 1 on a bad N or an empty store."""
    try:
        n = int(args.n)
    except ValueError:
        print(f"N must be a positive integer, got {args.n!r}", file=sys.stderr)
        return 1
    if n <= 0:
        print(f"N must be a positive integer, got {n}", file=sys.stderr)
        return 1

    if not ctx.store.query_by_kind(EntityKind.CONTACT):
        print("No contacts found. Import contacts first.", file=sys.stderr)
        return 1

    if args.rescore:
        ctx.scoring.score_all()
        ctx.flush()

    ranked = ctx.scoring.rank_top_n(n, category=args.category)
    rows = ctx.metrics.top_contacts_rows(ranked)
    title = f"Top {n} contacts"
    if args.category:
        title += f" in {args.category}"
    print(title)
    print("=" * 60)
    for row in rows:
        print(_format_row(row))
    return 0


def cmd_score(args: argparse.Namespace, ctx: KernelContext) -> int:
    scores = ctx.scoring.score_all()
    ctx.flush()
    print(f"Scored {len(scores)} contacts")
    return 0


def cmd_import(args: argparse.Namespace, ctx: KernelContext) -> int:
    if not args.csv_path.exists():
        print(f"File not found: {args.csv_path}", file=sys.stderr)
        return 1
    rows = parse_google_contacts_csv(args.csv_path)
    contacts = import_contacts(rows, ctx.store)
    ctx.flush()
    print(f"Imported {len(contacts)} contacts from {args.csv_path}")
    return 0


def cmd_metrics(args: argparse.Namespace, ctx: KernelContext) -> int:
    overall = ctx.metrics.overall()
    print("Outreach Summary")
    print("=" * 60)
    print(f"Sent:           {overall['total_sent']}")
    print(f"Responses:      {overall['total_responses']}")
    print(f"Response rate:  {overall['response_rate']:.1%}")
    average = overall["average_response_days"]
    if average is not None:
        print(f"Avg response:   {average:.1f} days")

    categories = ctx.metrics.category_performance()
    if categories:
        print("\nBy category:")
        for row in categories:
            print(
                f"  {row['category']}: {row['responses']}/{row['sent']} "
                f"({row['response_rate']:.1%})"
            )
    return 0


COMMANDS = {
    "top": cmd_top,
    "score": cmd_score,
    "import": cmd_import,
    "metrics": cmd_metrics,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.command is None:
        build_parser().print_help()
        return 1

    try:
        config = KernelConfig.from_env(get_env_file(args))
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    configure_logging(config.log_level)

    ctx = KernelContext.open(config)
    try:
        return COMMANDS[args.command](args, ctx)
    except ContactKernelError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
