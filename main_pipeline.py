"""
Command-line entry point for the QA mask / NDVI / contrast-stretch pipeline.
"""
from __future__ import annotations

import argparse
import logging
import time

from ndvi_qamask.api import apply
from ndvi_qamask.errors import QAMaskError


def main(argv: list[str] | None = None) -> int:
    """Main function to configure and run the pipeline from the command line."""
    parser = argparse.ArgumentParser(description="QA cloud masking and NDVI contrast-stretch pipeline")
    parser.add_argument('--reflectance', required=True, help="Multi-band reflectance GeoTIFF")
    parser.add_argument('--qa', required=True, help="Single-band QA GeoTIFF on the same grid")
    parser.add_argument('--output-path', help="Directory for mask, masked stack, NDVI and stretch outputs")
    parser.add_argument('--config', help="Path to a YAML pipeline config file")
    parser.add_argument('--nir-band', type=int, help="0-based NIR band index (overrides config)")
    parser.add_argument('--red-band', type=int, help="0-based red band index (overrides config)")
    parser.add_argument('--n-jobs', type=int, help="Worker threads for table build and reclassification (-1 = all cores)")
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default='INFO',
                        help="Set logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s,%(msecs)03d %(levelname)-8s [%(module)s]: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    start_time = time.time()
    try:
        result = apply(
            args.reflectance,
            args.qa,
            config_path=args.config,
            output_dir=args.output_path,
            nir_band=args.nir_band,
            red_band=args.red_band,
            n_jobs=args.n_jobs,
        )
    except (FileNotFoundError, QAMaskError) as e:
        logging.error(f"✗ {type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        logging.error("Pipeline interrupted by user.")
        raise
    except Exception as e:
        logging.critical(f"✗ PIPELINE FAILED with an unhandled exception: {e}", exc_info=True)
        return 1

    logging.info(f"✓ PIPELINE FINISHED in {time.time() - start_time:.2f} seconds.")
    for value, label in result.legend:
        logging.info(f"  legend tick {value:g}: {label}")
    return 0


if __name__ == "__main__":
    import sys
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        sys.exit(130)
