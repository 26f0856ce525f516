import argparse
import json
import logging
import os
import sys
from typing import Any, Dict

from motifscan.api import create_config, run_scan
from motifscan.report import OUTPUT_TYPES
from motifscan.scanners import registry


def setup_logging(verbose: bool, silent: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING if silent else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if verbose:
        logging.getLogger("numba").setLevel(logging.WARNING)


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="motifscan",
        description=(
            "motifscan: scan sequence sets for motifs with score cutoffs calibrated "
            "against a background false positive rate"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
 Examples:
   # Calibrate cutoffs at 5% FPR and report hit counts and GFF files
   motifscan -i peaks1.fa peaks2.fa -m motifs.pwm -b background.fa \\
     --range 0.5:0.05:1 --fpr 0.05 --times 10 --length 400

   # BED output with coordinates projected from peak summits
   motifscan -i peaks.fa -m motifs.meme -b background.fa \\
     -c peaks.xls -x 0 4 100 --output stats bed

   # Scan at a fixed cutoff without calibration
   motifscan -i peaks.fa -m motifs.pwm --justscan --range 0.85:1

   # Bootstrap p-values for hit counts using gimme scan
   motifscan -i peaks.fa -m motifs.pwm -b background.fa \\
     --scanner pwmscan --bootstrap 100 --seed 42 --jobs 4
         """,
    )

    io_group = parser.add_argument_group("Input/Output Options")
    io_group.add_argument(
        "-i", "--input", nargs="+", required=True, help="One or more FASTA files of input sequence sets."
    )
    io_group.add_argument("-m", "--motif", required=True, help="Motif file (.pwm, MEME or INCLUSive format).")
    io_group.add_argument(
        "-b", "--background", help="FASTA file of background sequences (required unless --justscan)."
    )
    io_group.add_argument(
        "-c", "--center", nargs="+", default=[], help="Peak centre files used to project hits to genome coordinates."
    )
    io_group.add_argument(
        "-x",
        "--colext",
        nargs=3,
        type=int,
        metavar=("ID_COL", "SUMMIT_COL", "EXTENSION"),
        help="0-based peak-id and summit columns of the centre files, and the extension around summits.",
    )
    io_group.add_argument(
        "-o",
        "--output",
        nargs="+",
        choices=list(OUTPUT_TYPES),
        default=["stats", "gff"],
        help="Report types to write. (default: %(default)s)",
    )
    io_group.add_argument("--outdir", default=".", help="Output directory. (default: %(default)s)")

    scan_group = parser.add_argument_group("Scanning Options")
    scan_group.add_argument(
        "-a",
        "--scanner",
        choices=registry.available(),
        default="native",
        help="Scanning backend. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-r",
        "--range",
        default="0.1:0.1:1",
        help="Candidate cutoffs as a:b (step 1) or a:x:b. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-p", "--fpr", type=float, default=0.05, help="Target false positive rate. (default: %(default)s)"
    )
    scan_group.add_argument(
        "-n",
        "--times",
        type=int,
        default=10,
        help="Background sample size as a multiple of each input set size. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-w", "--length", type=int, default=400, help="Length of background sequences. (default: %(default)s)"
    )
    scan_group.add_argument(
        "-e", "--besthit", type=int, default=1, help="Hits kept per sequence. (default: %(default)s)"
    )
    scan_group.add_argument(
        "-u", "--uniquestats", action="store_true", help="Count each sequence at most once in the statistics."
    )
    scan_group.add_argument(
        "-j", "--justscan", action="store_true", help="Skip calibration and scan at the lower bound of the range."
    )
    scan_group.add_argument(
        "--replacement", action="store_true", help="Allow sampling background sequences with replacement."
    )
    scan_group.add_argument(
        "--bootstrap",
        type=int,
        default=0,
        help="Background draws used for hit count p-values; 0 disables. (default: %(default)s)",
    )

    technical_group = parser.add_argument_group("Technical Options")
    technical_group.add_argument("--seed", type=int, default=None, help="Random seed for background sampling.")
    technical_group.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of parallel jobs to run. Set to -1 to use all available CPU cores. (default: %(default)s)",
    )
    technical_group.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    technical_group.add_argument("-s", "--silent", action="store_true", help="Only log warnings and errors.")

    return parser


def validate_inputs(args) -> None:
    """Validate input files and parameters."""
    logger = logging.getLogger(__name__)
    for path in args.input:
        if not os.path.exists(path):
            logger.error(f"Input file not found: {path}")
            sys.exit(1)
    if not os.path.exists(args.motif):
        logger.error(f"Motif file not found: {args.motif}")
        sys.exit(1)
    if args.background and not os.path.exists(args.background):
        logger.error(f"Background file not found: {args.background}")
        sys.exit(1)
    if not args.background and not args.justscan:
        logger.error("A background file is required unless --justscan is given")
        sys.exit(1)
    for path in args.center:
        if not os.path.exists(path):
            logger.error(f"Centre file not found: {path}")
            sys.exit(1)


def map_args_to_config_kwargs(args) -> Dict[str, Any]:
    """Map parsed CLI arguments to create_config keyword arguments."""
    return {
        "inputs": args.input,
        "motif": args.motif,
        "background": args.background,
        "scanner": args.scanner,
        "range": args.range,
        "fpr": args.fpr,
        "times": args.times,
        "length": args.length,
        "besthit": args.besthit,
        "uniquestats": args.uniquestats,
        "justscan": args.justscan,
        "center": args.center,
        "colext": args.colext,
        "output": args.output,
        "seed": args.seed,
        "replacement": args.replacement,
        "bootstrap": args.bootstrap,
        "n_jobs": args.jobs,
        "outdir": args.outdir,
    }


def main_cli():
    """Main CLI entry point."""
    parser = create_arg_parser()

    if len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args()

    setup_logging(args.verbose, args.silent)

    validate_inputs(args)

    try:
        config = create_config(**map_args_to_config_kwargs(args))
        result = run_scan(config)
        print(json.dumps(result.to_dict()))

    except (Exception, KeyboardInterrupt) as e:
        print(f"ERROR: Scan failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
