"""Load a text file into the ContextChat knowledge base."""
from __future__ import annotations

import argparse
import asyncio
import logging
import re
from pathlib import Path

from application.use_cases.add_resource import add_resource
from infrastructure.config import ContainerConfig, build_default_container
from ui.logging_utils import setup_logging

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def split_paragraphs(text: str) -> list[str]:
    return [part.strip() for part in _PARAGRAPH_BREAK.split(text) if part.strip()]


async def seed(path: Path, *, paragraphs: bool) -> int:
    container = build_default_container(ContainerConfig.from_env())
    text = path.read_text(encoding="utf-8")
    resources = split_paragraphs(text) if paragraphs else [text]

    stored = 0
    for resource in resources:
        try:
            records = await add_resource(
                resource,
                splitter=container.splitter,
                gateway=container.gateway,
                store=container.store,
            )
        except ValueError:
            logger.warning("Skipping a resource with no storable content.")
            continue
        stored += len(records)
    logger.info("Seeded %d records from %s (store now holds %d)", stored, path, await container.store.count())
    return stored


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", type=Path, help="UTF-8 text file with facts to store")
    parser.add_argument(
        "--paragraphs",
        action="store_true",
        help="Store each blank-line separated paragraph as its own resource.",
    )
    return parser.parse_args()


def main() -> None:
    setup_logging()
    args = parse_args()
    stored = asyncio.run(seed(args.path, paragraphs=args.paragraphs))
    print(f"Stored {stored} records from {args.path}")


if __name__ == "__main__":
    main()
