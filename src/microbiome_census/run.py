"""
Microbiome Census
----------------------------------------------------------------------------------------
Loads an abundance table, taxonomy and sample metadata, then runs the analyses
enabled in the YAML configuration (alpha and beta diversity, composition, taxon
group sums per subject and timepoint, differential abundance).
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Third-Party Imports
import pandas as pd

# Local Imports
from microbiome_census import constants
from microbiome_census.census import load_census
from microbiome_census.config import get_config
from microbiome_census.logger import setup_logging
from microbiome_census.workflow import CensusWorkflow

# ========================== INITIALIZATION & CONFIGURATION ========================== #

pd.set_option('display.max_colwidth', None)

# ==================================== FUNCTIONS ===================================== #

def validate_file(path: str) -> Path:
    """Validate that a file exists and return Path object."""
    path = Path(path)
    if not path.is_file():
        raise argparse.ArgumentTypeError(f"File {path} does not exist")
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='microbiome-census',
        description='Microbiome census analysis of QIIME 2 exports.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--config",
        type=validate_file,
        default=constants.DEFAULT_CONFIG,
        help="Path to the YAML configuration file",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for result tables and figures (overrides 'output_dir' in config)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=constants.DEFAULT_LOG_DIR,
        help="Directory for log files",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show DEBUG messages on the console",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main workflow execution function."""
    args = build_parser().parse_args(argv)
    logger = setup_logging(
        args.log_dir,
        console_level=logging.DEBUG if args.verbose else logging.INFO
    )

    config = get_config(args.config)
    output_dir = args.output_dir or config.get('output_dir')
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    try:
        logger.info("Starting microbiome census")
        data = load_census(config)
        CensusWorkflow(config, data, output_dir=output_dir).run()
    except Exception as e:
        logger.exception(f"Microbiome census failed: {e}")
        return 1

    logger.info(f"Microbiome census completed. Results in '{output_dir}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
