import logging
import os
import shutil
import subprocess

from motifscan.exceptions import ExternalToolError

logger = logging.getLogger(__name__)


def _run(args, program):
    """Run an external program, returning its completed process."""
    if shutil.which(args[0]) is None and not os.path.isfile(args[0]):
        raise ExternalToolError(program, 127, f"{args[0]} not found on PATH")

    logger.debug(" ".join(args))
    result = subprocess.run(args, shell=False, capture_output=True, text=True)
    logger.debug(result.stderr)

    if result.returncode != 0:
        raise ExternalToolError(program, result.returncode, result.stderr)
    return result


def run_gimme_scan(fasta_path, motif_path, cutoff, besthit, executable="gimme"):
    """Run ``gimme scan`` (pwmscan) and return its GFF output as text."""
    args = [executable, "scan", fasta_path, motif_path, "-c", f"{cutoff}", "-n", f"{besthit}"]
    return _run(args, "gimme scan").stdout


def run_motifscanner(fasta_path, background_model, motif_path, cutoff, output_path, executable="MotifScanner"):
    """Run MotifScanner on one motif and return the path of its GFF output."""
    args = [
        executable,
        "-f",
        fasta_path,
        "-b",
        background_model,
        "-m",
        motif_path,
        "-p",
        f"{cutoff}",
        "-s",
        "0",
        "-o",
        output_path,
    ]
    _run(args, "MotifScanner")
    return output_path


def create_background_model(fasta_path, output_path, executable="CreateBackgroundModel"):
    """Build the Markov background model required by MotifScanner."""
    if os.path.exists(output_path):
        logger.info(f"Background model {output_path} already exists. Proceeding...")
        return output_path

    logger.info(f"Creating Markov background model from {fasta_path} in {output_path}")
    # readers of output_path never see a half-written model
    partial = f"{output_path}.{os.getpid()}"
    _run([executable, "-f", fasta_path, "-b", partial], "CreateBackgroundModel")

    if not os.path.exists(partial):
        raise ExternalToolError("CreateBackgroundModel", 0, f"model file {output_path} was not created")
    os.replace(partial, output_path)
    return output_path
