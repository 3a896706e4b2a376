"""MGF and CSV export of pipeline results.

MGF records carry the feature id so that spectral-library or molecular
networking tools can join them back to the quantification tables:

    BEGIN IONS
    FEATURE_ID=12
    PEPMASS=200.0871
    SCANS=12
    RTINSECONDS=61.20
    CHARGE=1+
    MSLEVEL=2
    85.0284 1500.0
    END IONS

``CHARGE`` is written only when the precursor charge is known.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Union

import pandas as pd

from alphametfast.ms2 import ConsensusSpectrum
from alphametfast.scans import Spectrum

logger = logging.getLogger(__name__)

MgfSpectrum = Union[Spectrum, ConsensusSpectrum]

# File names written by export_results
EXPORT_FILES = {
    "all_spectra": "ms2_spectra_all.mgf",
    "max_spectra": "ms2_spectra_maxTic.mgf",
    "consensus_spectra": "ms2_spectra_consensus.mgf",
    "full": "feature_quant_full.csv",
    "ms2": "feature_quant_ms2.csv",
    "consensus": "feature_quant_consensus.csv",
}


def format_mgf_record(spectrum: MgfSpectrum) -> str:
    """One ``BEGIN IONS`` ... ``END IONS`` block (with trailing newline)."""
    if spectrum.feature_id is None:
        raise ValueError("Only spectra associated with a feature can be exported")

    lines = [
        "BEGIN IONS",
        f"FEATURE_ID={spectrum.feature_id}",
        f"PEPMASS={spectrum.precursor_mz:.6f}",
        f"SCANS={spectrum.feature_id}",
        f"RTINSECONDS={spectrum.rt:.3f}",
    ]
    if spectrum.precursor_charge > 0:
        lines.append(f"CHARGE={spectrum.precursor_charge}+")
    lines.append("MSLEVEL=2")
    for mz, intensity in zip(spectrum.mz, spectrum.intensity):
        lines.append(f"{mz:.6f} {intensity:.4f}")
    lines.append("END IONS")
    return "\n".join(lines) + "\n"


def write_mgf(path: Union[str, Path], spectra: Iterable[MgfSpectrum]) -> int:
    """Write spectra to an MGF file.

    Empty consensus spectra are skipped.

    Returns:
        Number of records written
    """
    path = Path(path)
    n_written = 0
    with open(path, "w") as f:
        for spectrum in spectra:
            if isinstance(spectrum, ConsensusSpectrum) and spectrum.is_empty:
                continue
            f.write(format_mgf_record(spectrum))
            f.write("\n")
            n_written += 1
    logger.info(f"Wrote {n_written:,} spectra to {path}")
    return n_written


def write_quant_table(path: Union[str, Path], table: pd.DataFrame) -> None:
    """Write a quantification table as CSV (no index column)."""
    path = Path(path)
    table.to_csv(path, index=False)
    logger.info(f"Wrote {len(table):,} features to {path}")


def export_results(result, output_dir: Union[str, Path]) -> Dict[str, Path]:
    """Write the three MGF files and the three quantification tables.

    Args:
        result: ``PipelineResult`` from ``run_pipeline``
        output_dir: Target directory (created if missing)

    Returns:
        Mapping of output name (keys of ``EXPORT_FILES``) to written path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {name: output_dir / filename for name, filename in EXPORT_FILES.items()}

    write_mgf(paths["all_spectra"], result.association.all_spectra())
    write_mgf(paths["max_spectra"], [result.max_spectra[fid] for fid in sorted(result.max_spectra)])
    write_mgf(
        paths["consensus_spectra"],
        [result.consensus_spectra[fid] for fid in sorted(result.consensus_spectra)],
    )

    write_quant_table(paths["full"], result.tables.full)
    write_quant_table(paths["ms2"], result.tables.ms2)
    write_quant_table(paths["consensus"], result.tables.consensus)

    logger.info(f"✓ Exported results to {output_dir}")
    return paths
