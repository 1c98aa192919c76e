#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Download verified contract sources from an Etherscan-family explorer and lay
them out on disk as the original multi-file tree.

OUTPUTS:
  <outdir>/<chain>/<address>/...        one file per source entry
  <outdir>/<chain>/<address>.json       raw explorer response (--save-raw)
  --summary CSV                         one row per address

Usage:
  python fetch_contract_sources.py 0x5A32099837D89E3a794a44fb131CBbAD41f87a8C --chain base
  python fetch_contract_sources.py --csv data_raw/contracts/verified_contracts_local.csv --summary outputs/sources.csv
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from tqdm import tqdm

from config_loader import SourceFetchSettings, load_settings, norm_addr, norm_chain
from explorer_client import ExplorerRequestError, fetch_source_response
from source_normalizer import (
    NormalizationResult,
    normalize,
    parse_explorer_response,
    summarize,
)
from source_writer import write_source_tree

ADDR_RE = re.compile(r"^0x[a-f0-9]{40}$")

Fetcher = Callable[..., Dict[str, Any]]


# ────────────────────────────────────────────────────────────────────────────────
# Logging
# ────────────────────────────────────────────────────────────────────────────────
def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "fetch_contract_sources.log", mode="a", encoding="utf-8"),
            logging.StreamHandler(),
        ],
        force=True,
    )


# ────────────────────────────────────────────────────────────────────────────────
# Pipeline
# ────────────────────────────────────────────────────────────────────────────────
def contract_dir(settings: SourceFetchSettings, address: str) -> Path:
    return settings.outdir / settings.chain / address


def download_contract_sources(
    address: str,
    settings: SourceFetchSettings,
    *,
    save_raw: bool = False,
    fetch: Fetcher = fetch_source_response,
) -> NormalizationResult:
    """fetch -> normalize -> write for one address. Any failure propagates; nothing is retried here."""
    raw = fetch(
        address,
        settings.api_key,
        base_url=settings.base_url,
        chain_id=settings.chain_id,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
        retry_sleep=settings.retry_sleep,
        sleep_sec=settings.sleep_sec,
    )

    out = contract_dir(settings, address)
    if save_raw:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.with_name(f"{address}.json").write_text(json.dumps(raw, ensure_ascii=False), encoding="utf-8")

    record = parse_explorer_response(raw)
    tree = normalize(record)
    written = write_source_tree(tree, out)

    result = summarize(record, tree)
    logging.info(f"✅ {address} ({record.contract_name}): {len(result.file_names)} files, {len(written)} written -> {out}")
    return result


# ────────────────────────────────────────────────────────────────────────────────
# Inputs
# ────────────────────────────────────────────────────────────────────────────────
def load_targets(addresses: List[str], csv_path: Optional[Path], default_chain: str) -> List[Tuple[str, str]]:
    """Collect (chain, address) pairs from argv and/or a CSV, deduplicated and sanity-checked."""
    rows = [{"chain": default_chain, "address": a} for a in addresses]

    if csv_path is not None:
        if not csv_path.exists():
            raise SystemExit(f"Missing input: {csv_path}")
        df = pd.read_csv(csv_path, low_memory=False)
        # accept contract_address → address
        if "address" not in df.columns and "contract_address" in df.columns:
            df = df.rename(columns={"contract_address": "address"})
        if "address" not in df.columns:
            raise SystemExit("Input CSV must contain an address (or contract_address) column.")
        if "chain" not in df.columns:
            df["chain"] = default_chain
        df["chain"] = df["chain"].fillna(default_chain)
        rows.extend(df[["chain", "address"]].to_dict("records"))

    targets: List[Tuple[str, str]] = []
    seen = set()
    for row in rows:
        chain = norm_chain(row["chain"]) or default_chain
        addr = norm_addr(row["address"])
        if not ADDR_RE.match(addr):
            logging.warning(f"⚠️ Skipping invalid address: {row['address']!r}")
            continue
        if (chain, addr) in seen:
            continue
        seen.add((chain, addr))
        targets.append((chain, addr))
    return targets


# ────────────────────────────────────────────────────────────────────────────────
# Main
# ────────────────────────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Fetch verified contract sources and write them as a file tree.")
    ap.add_argument("addresses", nargs="*", help="Contract addresses (0x...)")
    ap.add_argument("--csv", type=Path, default=None, help="CSV with an address (or contract_address) column; optional chain column")
    ap.add_argument("--chain", default=None, help="Chain name (default: EXPLORER_CHAIN or ethereum)")
    ap.add_argument("--outdir", type=Path, default=None, help="Base output directory (default: SOURCES_OUTDIR or ./contracts)")
    ap.add_argument("--env-file", type=Path, default=None, help="Explicit .env file to load")
    ap.add_argument("--save-raw", action="store_true", help="Also keep the raw explorer JSON next to each contract")
    ap.add_argument("--summary", type=Path, default=None, help="Write a per-address summary CSV here")
    ap.add_argument("--log-dir", type=Path, default=Path("logs"), help="Directory for the log file")
    ap.add_argument("--verbose", action="store_true", help="DEBUG logging")
    return ap


def main(argv: Optional[List[str]] = None, fetch: Fetcher = fetch_source_response) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_dir, verbose=args.verbose)

    try:
        settings = load_settings(args.env_file, chain=args.chain, outdir=args.outdir)
    except ValueError as e:
        raise SystemExit(str(e))

    targets = load_targets(args.addresses, args.csv, settings.chain)
    if not targets:
        raise SystemExit("No valid contract addresses given (pass addresses or --csv).")

    logging.info(f"Fetching {len(targets)} contract(s) from {settings.base_url} -> {settings.outdir}")

    rows: List[dict] = []
    for chain, addr in tqdm(targets, desc="sources"):
        row = {"chain": chain, "address": addr, "contract_name": "", "ok": 0, "n_files": 0, "files": "", "error": ""}
        try:
            result = download_contract_sources(addr, settings.for_chain(chain), save_raw=args.save_raw, fetch=fetch)
        # normalization errors, unsafe paths, unknown chains (ValueError); file/dir clashes (OSError)
        except (ValueError, OSError, ExplorerRequestError) as e:
            logging.error(f"❌ {addr}: {e}")
            row["error"] = str(e)
        else:
            row.update({
                "contract_name": result.contract_name,
                "ok": 1,
                "n_files": len(result.file_names),
                "files": ";".join(result.file_names),
            })
        rows.append(row)

    out = pd.DataFrame(rows)
    if args.summary is not None:
        args.summary.parent.mkdir(parents=True, exist_ok=True)
        out.to_csv(args.summary, index=False)
        logging.info(f"💾 Saved summary ({len(out)} rows) → {args.summary}")

    n_ok = int(out["ok"].sum())
    logging.info(f"Done: {n_ok}/{len(out)} contracts written")
    return 0 if n_ok == len(out) else 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
