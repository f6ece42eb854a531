#!/usr/bin/env python3
"""Builds the product grid composite for a products JSON file and writes it with debug metadata."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv
from fashion_pal.config import Settings
from fashion_pal.imaging import ProductImageMerger
from fashion_pal.models import Product


def load_products(path: Path) -> list[Product]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("products", [])
    if not isinstance(payload, list) or not payload:
        raise ValueError(f"{path} must contain a non-empty JSON array of products.")
    return [Product.from_payload(item) for item in payload]


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser()
    parser.add_argument("products", help="JSON file with an array of products (or {\"products\": [...]})")
    parser.add_argument(
        "--out-dir",
        default=str(settings.debug_merge_dir),
        help="Directory that receives the merged JPEG and its metadata file",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s - %(message)s")

    products = load_products(Path(os.path.expanduser(args.products)).resolve())
    merger = ProductImageMerger(
        fetch_timeout_seconds=settings.image_fetch_timeout_seconds,
        max_workers=settings.max_workers,
        debug_dir=Path(os.path.expanduser(args.out_dir)).resolve(),
    )
    merged = merger.merge(products, save_debug=True)
    if merged is None:
        raise SystemExit("None of the product images could be downloaded and processed.")
    print(f"Merged {len(products)} products into a {len(merged)} byte composite under {merger.debug_dir}")


if __name__ == "__main__":
    main()
