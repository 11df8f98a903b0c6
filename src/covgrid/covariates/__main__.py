#!/usr/bin/env python3
"""covgrid.covariates

Covariate resolution CLI for covgrid.

Resolves covariate records onto sample locations and an extrapolation grid
and writes the resulting [location, year, predictor] arrays to an .npz file
for the model-fitting step.

Settings come from the `covariates:` section of a YAML config
(default: config/covariates.yaml, if present); command-line flags override
the config.

Inputs:
- covariate data: CSV or Parquet with Lat, Lon, Year + covariate columns
  (Year empty or 'static' for year-invariant covariates such as depth)
- sample locations: CSV or Parquet with Lat, Lon, Year
- grid cells: CSV or Parquet with Lat, Lon; or a vector file
  (GeoPackage, GeoJSON, Shapefile) whose centroids are used

Output (.npz):
- x_itp, x_gtp, years, predictor_names, covariate_names

Examples:
  # Check every year between the first and last sample year resolves
  python -m covgrid.covariates coverage \
    --covariate-data data/interim/tables/covariates.csv \
    --samples data/interim/tables/samples.csv

  # Resolve covariates with the formula from config
  python -m covgrid.covariates --config config/covariates.yaml resolve

  # Override formula and output
  python -m covgrid.covariates resolve --formula "~ depth + temp" --out data/processed/cov.npz
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from covgrid.config import (
    DEFAULT_COVARIATES_YAML,
    DEFAULT_SETTINGS,
    drop_unset,
    load_covariates_yaml,
    merge_settings,
)
from covgrid.covariates.errors import CovariateError


VECTOR_SUFFIXES = {".gpkg", ".geojson", ".shp", ".fgb"}


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for covgrid.covariates."""
    ap = argparse.ArgumentParser(
        prog="covgrid.covariates",
        description="Resolve spatial covariates onto samples and an extrapolation grid",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to config YAML (default: {DEFAULT_COVARIATES_YAML} if it exists)",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    ap.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log per-year matching details",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # Input flags shared by both subcommands
    inputs = argparse.ArgumentParser(add_help=False)
    inputs.add_argument("--covariate-data", type=Path, default=None, help="CSV/Parquet of covariate records")
    inputs.add_argument("--samples", dest="sample_locations", type=Path, default=None,
                        help="CSV/Parquet of sample locations (Lat, Lon, Year)")

    # --- resolve ---
    resolve = sub.add_parser(
        "resolve",
        parents=[inputs],
        help="Resolve covariates and write x_itp / x_gtp arrays",
        description="""
Match covariate records to samples and grid cells (nearest neighbor, per year),
expand the formula without intercept, and write the arrays to .npz.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    resolve.add_argument("--grid", dest="grid_cells", type=Path, default=None,
                         help="CSV/Parquet (Lat, Lon) or vector file of grid cells")
    resolve.add_argument("--formula", default=None, help='Model formula, e.g. "~ depth + temp"')
    resolve.add_argument("--out", type=Path, default=None,
                         help=f"Output .npz (default: {DEFAULT_SETTINGS['out']})")
    resolve.add_argument("--sd-threshold", type=float, default=None,
                         help=f"Scale warning threshold (default: {DEFAULT_SETTINGS['sd_threshold']})")

    # --- coverage ---
    cov = sub.add_parser(
        "coverage",
        parents=[inputs],
        help="Report per-year covariate coverage for the sample year range",
    )
    cov.add_argument("--json", action="store_true", help="Output JSON")

    return ap


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _settings(args: argparse.Namespace) -> Dict[str, Any]:
    """Layer defaults, config YAML and CLI flags."""
    config_path = args.config
    if config_path is None and DEFAULT_COVARIATES_YAML.exists():
        config_path = DEFAULT_COVARIATES_YAML
    from_yaml: Dict[str, Any] = {}
    if config_path is not None:
        try:
            from_yaml = load_covariates_yaml(config_path)
        except ValueError as e:
            raise SystemExit(str(e)) from e

    flags = drop_unset({k: getattr(args, k, None) for k in DEFAULT_SETTINGS})
    return merge_settings(merge_settings(DEFAULT_SETTINGS, from_yaml), flags, keys=DEFAULT_SETTINGS)


def _require(settings: Dict[str, Any], keys: List[str]) -> None:
    missing = [k for k in keys if not settings.get(k)]
    if missing:
        raise SystemExit(
            f"Missing settings: {missing}. Set them under 'covariates:' in the config or pass flags."
        )


def _read_table(path: Path) -> pd.DataFrame:
    """Read a CSV or Parquet table."""
    path = Path(path)
    if not path.exists():
        raise SystemExit(f"Input not found: {path}")
    if path.suffix.lower() in {".parquet", ".pq"}:
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _read_grid(path: Path) -> pd.DataFrame:
    """Read grid cells; vector files come back as a GeoDataFrame."""
    path = Path(path)
    if path.suffix.lower() in VECTOR_SUFFIXES:
        if not path.exists():
            raise SystemExit(f"Input not found: {path}")
        # Lazy import: geopandas is only needed for vector grids
        import geopandas as gpd

        return gpd.read_file(path)
    return _read_table(path)


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_resolve(args: argparse.Namespace) -> int:
    """Handle the resolve subcommand."""
    settings = _settings(args)
    _require(settings, ["formula", "covariate_data", "sample_locations", "grid_cells"])

    out = Path(settings["out"])
    if out.exists() and not args.overwrite:
        raise SystemExit(f"Output exists: {out} (pass --overwrite to replace it)")

    if args.dry_run:
        print("[dry-run] Would resolve covariates:")
        print(f"  Formula: {settings['formula']}")
        print(f"  Covariate data: {settings['covariate_data']}")
        print(f"  Sample locations: {settings['sample_locations']}")
        print(f"  Grid cells: {settings['grid_cells']}")
        print(f"  Output: {out}")
        return 0

    covariate_data = _read_table(settings["covariate_data"])
    samples = _read_table(settings["sample_locations"])
    grid = _read_grid(settings["grid_cells"])

    # Lazy import to keep CLI startup fast
    from covgrid.covariates.make_covariates import make_covariates

    try:
        arrays = make_covariates(
            settings["formula"],
            covariate_data,
            samples,
            grid,
            sd_threshold=float(settings["sd_threshold"]),
        )
    except CovariateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    out.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        out,
        x_itp=arrays.x_itp,
        x_gtp=arrays.x_gtp,
        years=arrays.years,
        predictor_names=np.array(arrays.predictor_names, dtype=str),
        covariate_names=np.array(arrays.covariate_names, dtype=str),
    )

    print(f"Wrote covariate arrays -> {out}")
    print(f"  x_itp: {arrays.x_itp.shape}  x_gtp: {arrays.x_gtp.shape}")
    print(f"  years: {int(arrays.years[0])}-{int(arrays.years[-1])}")
    print(f"  predictors: {', '.join(arrays.predictor_names)}")
    return 0


def _handle_coverage(args: argparse.Namespace) -> int:
    """Handle the coverage subcommand.

    Exit code 0 if every year in the sample range resolves, 2 otherwise.
    """
    settings = _settings(args)
    _require(settings, ["covariate_data", "sample_locations"])

    from covgrid.covariates.partition import year_coverage, year_set
    from covgrid.covariates.validate import check_covariate_data, coerce_sample_locations

    covariate_data = _read_table(settings["covariate_data"])
    try:
        check_covariate_data(covariate_data)
        samples = coerce_sample_locations(_read_table(settings["sample_locations"]))
    except CovariateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    report = year_coverage(covariate_data, year_set(samples["Year"]))
    ok = bool(report["ok"].all())

    if args.json:
        years = [
            {"Year": int(r.Year), "n_yearly": int(r.n_yearly), "n_static": int(r.n_static), "ok": bool(r.ok)}
            for r in report.itertuples(index=False)
        ]
        print(json.dumps({"ok": ok, "years": years}, indent=2))
    else:
        for r in report.itertuples(index=False):
            status = "OK" if r.ok else "MISSING"
            print(f"[{status}] {r.Year}: {r.n_yearly} yearly, {r.n_static} static")
        print(f"Overall: {'OK' if ok else 'NOT OK'}")
    return 0 if ok else 2


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for covgrid.covariates CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    handlers = {
        "resolve": _handle_resolve,
        "coverage": _handle_coverage,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
