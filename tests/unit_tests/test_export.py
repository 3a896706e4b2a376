"""Tests for MGF and CSV export."""

import numpy as np
import pandas as pd
import pytest

from alphametfast.export import (
    EXPORT_FILES,
    export_results,
    format_mgf_record,
    write_mgf,
    write_quant_table,
)
from alphametfast.ms2 import ConsensusSpectrum
from alphametfast.pipeline import PipelineParams, run_pipeline
from alphametfast.scans import Spectrum


def linked_spectrum(feature_id=4, charge=0):
    return Spectrum(
        sample_id="S1", scan_index=12, rt=61.2, precursor_mz=200.0871,
        mz=np.array([85.0284, 120.5]), intensity=np.array([1500.0, 20.0]),
        precursor_charge=charge, feature_id=feature_id,
    )


def consensus(feature_id, mz):
    mz = np.asarray(mz, dtype=float)
    return ConsensusSpectrum(
        feature_id=feature_id, precursor_mz=300.0, rt=10.0,
        mz=mz, intensity=np.ones(len(mz)), fraction=np.ones(len(mz)), n_spectra=3,
    )


def read_records(path):
    """Parse an MGF file into (header dict, peak list) tuples."""
    records = []
    header, peaks = None, None
    for line in path.read_text().splitlines():
        if line == "BEGIN IONS":
            header, peaks = {}, []
        elif line == "END IONS":
            records.append((header, peaks))
            header = None
        elif header is not None and "=" in line:
            key, value = line.split("=", 1)
            header[key] = value
        elif header is not None and line:
            mz, intensity = line.split()
            peaks.append((float(mz), float(intensity)))
    return records


class TestMgf:
    """Test MGF records."""

    def test_record_fields(self):
        """Header carries the feature id, precursor and retention time."""
        text = format_mgf_record(linked_spectrum())
        lines = text.strip().splitlines()

        assert lines[0] == "BEGIN IONS"
        assert lines[-1] == "END IONS"
        assert "FEATURE_ID=4" in lines
        assert "SCANS=4" in lines
        assert "MSLEVEL=2" in lines
        assert any(line.startswith("PEPMASS=200.0871") for line in lines)
        assert any(line.startswith("RTINSECONDS=61.2") for line in lines)
        assert not any(line.startswith("CHARGE=") for line in lines)

    def test_known_charge_written(self):
        """CHARGE appears only when the charge is known."""
        text = format_mgf_record(linked_spectrum(charge=2))

        assert "CHARGE=2+" in text.splitlines()

    def test_unlinked_spectrum_rejected(self):
        """Every exported spectrum must belong to a feature."""
        with pytest.raises(ValueError):
            format_mgf_record(linked_spectrum(feature_id=None))

    def test_write_and_read_back(self, tmp_path):
        """Peaks and headers survive the file format."""
        path = tmp_path / "spectra.mgf"

        n = write_mgf(path, [linked_spectrum(4), linked_spectrum(5)])
        records = read_records(path)

        assert n == 2
        assert [r[0]["FEATURE_ID"] for r in records] == ["4", "5"]
        assert records[0][1] == [(85.0284, 1500.0), (120.5, 20.0)]

    def test_empty_consensus_skipped(self, tmp_path):
        """Empty consensus spectra are not exported."""
        path = tmp_path / "consensus.mgf"

        n = write_mgf(path, [consensus(1, [100.0]), consensus(2, [])])

        assert n == 1
        assert [r[0]["FEATURE_ID"] for r in read_records(path)] == ["1"]


class TestExportResults:
    """Test writing a whole pipeline result."""

    def test_writes_all_files(self, two_sample_store, tmp_path):
        """Three MGF files and three tables, consistent with the result."""
        result = run_pipeline(two_sample_store, PipelineParams(n_workers=1))

        paths = export_results(result, tmp_path / "out")

        assert set(paths) == set(EXPORT_FILES)
        for path in paths.values():
            assert path.exists()

        full = pd.read_csv(paths["full"])
        assert list(full["feature_id"]) == list(result.tables.full["feature_id"])
        assert len(read_records(paths["all_spectra"])) == result.association.n_spectra
        assert len(read_records(paths["max_spectra"])) == len(result.max_spectra)

        mgf_ids = {int(r[0]["FEATURE_ID"]) for r in read_records(paths["consensus_spectra"])}
        assert mgf_ids == set(pd.read_csv(paths["consensus"])["feature_id"])

    def test_write_quant_table(self, tmp_path):
        """CSV without index column."""
        table = pd.DataFrame({"feature_id": [1, 2], "S1": [1.5, 0.0]})
        path = tmp_path / "quant.csv"

        write_quant_table(path, table)

        assert pd.read_csv(path).equals(table)
