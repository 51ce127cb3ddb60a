#!/usr/bin/env python3
"""
Download CDC/WHO growth reference tables into the bundled CSV format.

This script downloads growth reference data from CDC and WHO sources,
normalizes the columns to `Sex,Agemos,L,M,S,P3,...,P97` and writes one
CSV per standard and measurement type into `src/growthref/data`.

CDC infant tables cover birth to 36 months, CDC child tables 24 to 240
months and WHO tables birth to 24 months. Intergrowth-21st and WHO BMI
tables are not published in a machine readable form and are not touched.
"""

import argparse
import hashlib
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from tqdm import tqdm
from urllib3.util.retry import Retry

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ["Sex", "Agemos", "L", "M", "S", "P3", "P5", "P10", "P25", "P50", "P75", "P90", "P95", "P97"]

CDC_BASE = "https://www.cdc.gov/growthcharts/data/zscore"
WHO_BASE = "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts"

# Data sources: output file -> [(sex, url)], sex None when the file carries a Sex column
DATA_SOURCES: Dict[str, Dict[str, List[Tuple[Optional[int], str]]]] = {
    "cdc": {
        "cdc_infant_weight.csv": [(None, f"{CDC_BASE}/wtageinf.csv")],
        "cdc_infant_height.csv": [(None, f"{CDC_BASE}/lenageinf.csv")],
        "cdc_infant_head.csv": [(None, f"{CDC_BASE}/hcageinf.csv")],
        "cdc_child_weight.csv": [(None, f"{CDC_BASE}/wtage.csv")],
        "cdc_child_height.csv": [(None, f"{CDC_BASE}/statage.csv")],
        "cdc_child_bmi.csv": [(None, f"{CDC_BASE}/bmiagerev.csv")],
    },
    "who": {
        "who_weight.csv": [
            (1, f"{WHO_BASE}/WHO-Boys-Weight-for-age-Percentiles.csv"),
            (2, f"{WHO_BASE}/WHO-Girls-Weight-for-age%20Percentiles.csv"),
        ],
        "who_height.csv": [
            (1, f"{WHO_BASE}/WHO-Boys-Length-for-age-Percentiles.csv"),
            (2, f"{WHO_BASE}/WHO-Girls-Length-for-age-Percentiles.csv"),
        ],
        "who_head.csv": [
            (1, f"{WHO_BASE}/WHO-Boys-Head-Circumference-for-age-Percentiles.csv"),
            (2, f"{WHO_BASE}/WHO-Girls-Head-Circumference-for-age-Percentiles.csv"),
        ],
    },
}

# Age window kept per source type (months)
AGE_WINDOWS = {
    "cdc_infant": (0.0, 36.0),
    "cdc_child": (24.0, 240.0),
    "who": (0.0, 24.0),
}


def download_csv(url: str, timeout: int = 30) -> str:
    """Download CSV content from URL with retries."""
    try:
        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=2,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)

        with requests.Session() as session:
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            response = session.get(url, timeout=timeout, verify=True)
            response.raise_for_status()
            return response.text
    except Exception as e:
        logger.error(f"Failed to download {url}: {e}")
        raise


def compute_sha256(content: str) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _clean_header(columns: List[str]) -> List[str]:
    return [str(col).replace("\ufeff", "").strip() for col in columns]


def parse_cdc_csv(content: str, name: str) -> pd.DataFrame:
    """
    Parse a CDC z-score table.

    CDC files carry Sex (1/2), Agemos, L, M, S and the percentile columns;
    some repeat their header mid-file, those rows are dropped.
    """
    df = pd.read_csv(io.StringIO(content), dtype=str)
    df.columns = _clean_header(df.columns)
    lower = {col.lower(): col for col in df.columns}
    renamed = {}
    for col in OUTPUT_COLUMNS:
        if col.lower() in lower:
            renamed[lower[col.lower()]] = col
    df = df.rename(columns=renamed)

    missing = [col for col in ["Sex", "Agemos", "L", "M", "S"] if col not in df.columns]
    if missing:
        raise ValueError(f"{name}: missing columns {missing}")

    df = df[[col for col in OUTPUT_COLUMNS if col in df.columns]]
    df = df.apply(pd.to_numeric, errors="coerce")
    df = df.dropna(subset=["Sex", "Agemos"])
    df["Sex"] = df["Sex"].astype(int)
    return df.reset_index(drop=True)


def parse_who_csv(content: str, name: str, sex: int) -> pd.DataFrame:
    """Parse a WHO percentile table for one sex; 'Month' becomes 'Agemos'."""
    df = pd.read_csv(io.StringIO(content), dtype=str)
    df.columns = _clean_header(df.columns)
    if "Month" not in df.columns:
        raise ValueError(f"{name}: missing 'Month' column")
    df = df.rename(columns={"Month": "Agemos"})

    for col in ["L", "M", "S"]:
        if col not in df.columns:
            logger.warning(f"Essential column {col} not found in {name} header")

    df.insert(0, "Sex", sex)
    df = df[[col for col in OUTPUT_COLUMNS if col in df.columns]]
    df = df.apply(pd.to_numeric, errors="coerce")
    return df.dropna(subset=["Agemos"]).reset_index(drop=True)


def validate_frame(df: pd.DataFrame, name: str) -> None:
    """Validate a parsed table for common issues."""
    if df.empty:
        logger.warning(f"{name}: empty table")
        return

    if not np.all(np.isfinite(df["Agemos"])):
        raise ValueError(f"{name}: non-finite Agemos values")
    for sex, group in df.groupby("Sex"):
        ages = group["Agemos"].to_numpy()
        if len(ages) > 1 and not np.all(ages[:-1] < ages[1:]):
            raise ValueError(f"{name}: Agemos not strictly increasing for sex {sex}")

    # L can be negative; M and S must be positive
    for col in ["M", "S"]:
        if col in df.columns and np.any(df[col] <= 0):
            raise ValueError(f"{name}: non-positive {col} values")

    if df["Agemos"].max() > 241:
        logger.warning(
            f"{name}: Age values up to {df['Agemos'].max():.1f} months detected. "
            "Values >241 months suggest input may be in years rather than months."
        )


def clip_ages(df: pd.DataFrame, output_name: str) -> pd.DataFrame:
    """Keep rows inside the age window of the output table's standard."""
    for prefix, (lo, hi) in AGE_WINDOWS.items():
        if output_name.startswith(prefix):
            return df[(df["Agemos"] >= lo) & (df["Agemos"] <= hi)].reset_index(drop=True)
    return df


def save_csv(df: pd.DataFrame, output_path: Path) -> None:
    """Save a table in the bundled CSV format."""
    df.to_csv(output_path, index=False, float_format="%.5f")
    logger.info(f"Saved {len(df)} rows to {output_path}")


def main(strict_mode=False, source_filter=None, output_dir=None):
    """Main function to download and process all data."""
    script_dir = Path(__file__).parent
    data_dir = Path(output_dir) if output_dir else script_dir.parent / "src" / "growthref" / "data"
    data_dir.mkdir(parents=True, exist_ok=True)

    failed_sources = []
    written = []

    total_sources = sum(
        len(parts) for files in DATA_SOURCES.values() for parts in files.values()
    )
    with tqdm(total=total_sources, desc="Fetching sources") as pbar:
        for source_type, files in DATA_SOURCES.items():
            if source_filter and source_type != source_filter:
                pbar.update(sum(len(parts) for parts in files.values()))
                continue

            for output_name, parts in files.items():
                frames = []
                try:
                    for sex, url in parts:
                        pbar.set_postfix({"source": f"{source_type.upper()}: {output_name}"})
                        pbar.update(1)
                        csv_content = download_csv(url)
                        logger.info(f"{url} sha256={compute_sha256(csv_content)}")
                        if source_type == "cdc":
                            frames.append(parse_cdc_csv(csv_content, output_name))
                        else:
                            frames.append(parse_who_csv(csv_content, output_name, sex))

                    table = clip_ages(pd.concat(frames, ignore_index=True), output_name)
                    table = table.sort_values(["Sex", "Agemos"]).reset_index(drop=True)
                    validate_frame(table, output_name)
                    save_csv(table, data_dir / output_name)
                    written.append(output_name)
                except Exception as e:
                    failed_sources.append(f"{source_type}::{output_name}")
                    logger.error(f"Failed to process {source_type}::{output_name}: {e}")
                    continue

    if strict_mode and failed_sources:
        raise RuntimeError(
            f"Strict mode failed: Unable to process sources: {', '.join(failed_sources)}"
        )

    logger.info(f"Verification: {len(written)} tables written to {data_dir}")
    return written


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Download growth reference data from CDC and WHO sources."
    )
    parser.add_argument(
        "--source",
        choices=["cdc", "who"],
        help="Download only from specified source type (cdc or who)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Strict mode: exit on any error instead of continuing with warnings",
    )
    parser.add_argument(
        "--output-dir",
        help="Directory to write the CSV tables to (defaults to the package data directory)",
    )
    args = parser.parse_args()

    main(strict_mode=args.strict, source_filter=args.source, output_dir=args.output_dir)
