"""Scan store: validated, read-only per-sample MS1/MS2 data.

Raw-file decoding happens outside this package. A decoder hands over one
``DecodedSample`` per input file (sample label, sample group and an ordered
iterable of ``Scan`` records); ``ScanStore.ingest`` validates each sample and
packs its MS1 scans into flat CSR-style arrays that the numba kernels in
``alphametfast.xic`` can walk without Python overhead.

A sample with corrupt scans is rejected on its own: the error is logged and
recorded in ``ScanStore.errors`` while the remaining samples are ingested.

Examples
--------
>>> scans = [
...     Scan(ms_level=1, rt=10.0, mz=np.array([200.0]), intensity=np.array([1e4])),
...     Scan(ms_level=2, rt=10.5, mz=np.array([85.0, 120.0]),
...          intensity=np.array([50.0, 0.0]), precursor_mz=200.0),
... ]
>>> store = ScanStore.ingest([DecodedSample("S1", "QC", scans)])
>>> store["S1"].n_ms1_scans
1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class MalformedScanError(ValueError):
    """Raised when decoded scan data cannot be ingested."""


@dataclass(frozen=True, eq=False)
class Scan:
    """One decoded mass spectrum.

    ``mz`` must be strictly increasing. For MS2 scans ``precursor_mz`` is
    required; ``isolation_window`` holds the (lower, upper) offsets around it
    and ``precursor_charge`` is 0 when unknown.
    """

    ms_level: int
    rt: float
    mz: np.ndarray
    intensity: np.ndarray
    scan_index: int = -1
    precursor_mz: float = 0.0
    isolation_window: Tuple[float, float] = (0.0, 0.0)
    precursor_charge: int = 0


@dataclass(frozen=True, eq=False)
class Spectrum:
    """An MS2 spectrum and the feature it has been associated with."""

    sample_id: str
    scan_index: int
    rt: float
    precursor_mz: float
    mz: np.ndarray
    intensity: np.ndarray
    precursor_charge: int = 0
    feature_id: Optional[int] = None

    @property
    def n_peaks(self) -> int:
        return len(self.mz)

    @property
    def tic(self) -> float:
        """Total intensity (sum over all peaks)."""
        return float(np.sum(self.intensity))

    def clean(self) -> "Spectrum":
        """Return a copy with zero-intensity peaks removed."""
        keep = self.intensity > 0
        if np.all(keep):
            return self
        return replace(self, mz=self.mz[keep], intensity=self.intensity[keep])

    def with_feature(self, feature_id: int) -> "Spectrum":
        """Return a copy linked to ``feature_id``.

        A spectrum belongs to at most one feature, so re-linking an already
        associated spectrum to a different feature is rejected.
        """
        if isinstance(feature_id, bool) or not isinstance(feature_id, (int, np.integer)):
            raise ValueError(f"feature_id must be an integer, got {feature_id!r}")
        if feature_id < 1:
            raise ValueError(f"feature_id must be >= 1, got {feature_id}")
        if self.feature_id is not None and self.feature_id != feature_id:
            raise ValueError(
                f"Spectrum {self.sample_id}:{self.scan_index} already belongs to "
                f"feature {self.feature_id}, cannot assign to {feature_id}"
            )
        return replace(self, feature_id=int(feature_id))


@dataclass(frozen=True)
class DecodedSample:
    """Hand-over record from a raw-file decoder."""

    sample_id: str
    group: str
    scans: Iterable[Scan]


@dataclass(frozen=True, eq=False)
class SampleScans:
    """All scans of one sample, MS1 packed in CSR form.

    The peaks of MS1 scan ``i`` are ``ms1_mz[ms1_offsets[i]:ms1_offsets[i + 1]]``
    (sorted by m/z) with retention time ``ms1_rt[i]``.
    """

    sample_id: str
    group: str
    ms1_rt: np.ndarray
    ms1_offsets: np.ndarray
    ms1_mz: np.ndarray
    ms1_intensity: np.ndarray
    spectra: Tuple[Spectrum, ...] = ()

    @property
    def n_ms1_scans(self) -> int:
        return len(self.ms1_rt)

    def scan_peaks(self, scan_idx: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return (mz, intensity) of the ``scan_idx``-th MS1 scan."""
        start = self.ms1_offsets[scan_idx]
        end = self.ms1_offsets[scan_idx + 1]
        return self.ms1_mz[start:end], self.ms1_intensity[start:end]

    @classmethod
    def from_scans(
        cls,
        sample_id: str,
        scans: Iterable[Scan],
        group: str = "default",
    ) -> "SampleScans":
        """Validate decoded scans and pack them.

        Raises
        ------
        MalformedScanError
            On unknown MS levels, non-finite values, mismatched array
            lengths, non-increasing m/z, negative intensities, MS1 retention
            times running backwards, MS2 scans without a precursor, unreadable
            scan fields or a decoder that fails while yielding scans.
        """
        ms1_rt: List[float] = []
        ms1_mz: List[np.ndarray] = []
        ms1_int: List[np.ndarray] = []
        spectra: List[Spectrum] = []

        for position, scan in enumerate(_read_scans(sample_id, scans)):
            scan = _validate_scan(sample_id, position, scan)

            if scan.ms_level == 1:
                if ms1_rt and scan.rt < ms1_rt[-1]:
                    raise MalformedScanError(
                        f"{sample_id}: MS1 scan {scan.scan_index} at rt {scan.rt} precedes "
                        f"previous scan at rt {ms1_rt[-1]}"
                    )
                ms1_rt.append(scan.rt)
                ms1_mz.append(scan.mz)
                ms1_int.append(scan.intensity)
            else:
                spectra.append(Spectrum(
                    sample_id=sample_id,
                    scan_index=scan.scan_index,
                    rt=scan.rt,
                    precursor_mz=scan.precursor_mz,
                    mz=scan.mz,
                    intensity=scan.intensity,
                    precursor_charge=scan.precursor_charge,
                ))

        offsets = np.zeros(len(ms1_rt) + 1, dtype=np.int64)
        if ms1_mz:
            offsets[1:] = np.cumsum([len(m) for m in ms1_mz])
            flat_mz = np.concatenate(ms1_mz)
            flat_int = np.concatenate(ms1_int)
        else:
            flat_mz = np.zeros(0, dtype=np.float64)
            flat_int = np.zeros(0, dtype=np.float64)

        return cls(
            sample_id=sample_id,
            group=group,
            ms1_rt=np.asarray(ms1_rt, dtype=np.float64),
            ms1_offsets=offsets,
            ms1_mz=flat_mz,
            ms1_intensity=flat_int,
            spectra=tuple(spectra),
        )


def _read_scans(sample_id: str, scans: Iterable[Scan]) -> Iterator[Scan]:
    """Iterate decoder output, reporting decoder failures as malformed input."""
    iterator = None
    while True:
        try:
            if iterator is None:
                iterator = iter(scans)
            scan = next(iterator)
        except StopIteration:
            return
        except MalformedScanError:
            raise
        except Exception as e:
            raise MalformedScanError(
                f"{sample_id}: cannot read scans ({type(e).__name__}: {e})"
            ) from e
        yield scan


def _validate_scan(sample_id: str, position: int, scan: Scan) -> Scan:
    """Return ``scan`` with numeric fields coerced, or raise MalformedScanError."""
    where = f"{sample_id}: scan {position}"

    try:
        scan_index = int(scan.scan_index)
        scan_index = scan_index if scan_index >= 0 else position
        where = f"{sample_id}: scan {scan_index}"
        ms_level = int(scan.ms_level)
        rt = float(scan.rt)
        precursor_mz = float(scan.precursor_mz)
        precursor_charge = int(scan.precursor_charge)
        isolation_window = (float(scan.isolation_window[0]), float(scan.isolation_window[1]))
        mz = np.asarray(scan.mz, dtype=np.float64)
        intensity = np.asarray(scan.intensity, dtype=np.float64)
    except (AttributeError, IndexError, TypeError, ValueError) as e:
        raise MalformedScanError(f"{where}: unreadable scan fields ({e})") from e

    if ms_level not in (1, 2):
        raise MalformedScanError(f"{where}: unsupported MS level {ms_level}")
    if not np.isfinite(rt) or rt < 0:
        raise MalformedScanError(f"{where}: invalid retention time {rt}")

    if mz.ndim != 1 or intensity.ndim != 1 or len(mz) != len(intensity):
        raise MalformedScanError(
            f"{where}: m/z and intensity arrays must be 1-D with equal length "
            f"(got {mz.shape} and {intensity.shape})"
        )
    if not (np.all(np.isfinite(mz)) and np.all(np.isfinite(intensity))):
        raise MalformedScanError(f"{where}: non-finite m/z or intensity values")
    if len(mz) > 1 and np.any(np.diff(mz) <= 0):
        raise MalformedScanError(f"{where}: m/z values are not strictly increasing")
    if np.any(intensity < 0):
        raise MalformedScanError(f"{where}: negative intensities")

    if ms_level == 2:
        if not np.isfinite(precursor_mz) or precursor_mz <= 0:
            raise MalformedScanError(f"{where}: MS2 scan without valid precursor m/z")

    return Scan(
        ms_level=ms_level,
        rt=rt,
        mz=mz,
        intensity=intensity,
        scan_index=scan_index,
        precursor_mz=precursor_mz,
        isolation_window=isolation_window,
        precursor_charge=precursor_charge,
    )


@dataclass
class ScanStore:
    """Ordered collection of ingested samples.

    Sample order is the order of ingestion and is used wherever a
    deterministic "earliest sample" tie-break is needed.
    """

    samples: Dict[str, SampleScans] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def ingest(cls, decoded: Iterable[DecodedSample]) -> "ScanStore":
        """Ingest decoded samples, skipping (and recording) malformed ones."""
        store = cls()
        for sample in decoded:
            if sample.sample_id in store.samples or sample.sample_id in store.errors:
                message = f"duplicate sample id {sample.sample_id!r}"
                logger.error(f"Skipping sample: {message}")
                store.errors[f"{sample.sample_id}#duplicate"] = message
                continue
            try:
                scans = SampleScans.from_scans(sample.sample_id, sample.scans, sample.group)
            except MalformedScanError as e:
                logger.error(f"Skipping sample {sample.sample_id}: {e}")
                store.errors[sample.sample_id] = str(e)
                continue
            store.samples[sample.sample_id] = scans
            logger.info(
                f"Ingested {sample.sample_id} ({sample.group}): "
                f"{scans.n_ms1_scans:,} MS1 scans, {len(scans.spectra):,} MS2 spectra"
            )

        logger.info(f"✓ Ingested {len(store.samples)} samples ({len(store.errors)} rejected)")
        return store

    @property
    def sample_ids(self) -> List[str]:
        return list(self.samples)

    @property
    def sample_groups(self) -> Dict[str, str]:
        return {sid: s.group for sid, s in self.samples.items()}

    def spectra(self) -> List[Spectrum]:
        """All MS2 spectra, in sample then acquisition order."""
        return [spec for sample in self.samples.values() for spec in sample.spectra]

    def sample_rank(self) -> Dict[str, int]:
        return {sid: i for i, sid in enumerate(self.samples)}

    def __getitem__(self, sample_id: str) -> SampleScans:
        return self.samples[sample_id]

    def __iter__(self) -> Iterator[SampleScans]:
        return iter(self.samples.values())

    def __len__(self) -> int:
        return len(self.samples)

    def __contains__(self, sample_id: str) -> bool:
        return sample_id in self.samples


def build_store(samples: Sequence[SampleScans]) -> ScanStore:
    """Wrap already-packed samples in a ``ScanStore``."""
    return ScanStore(samples={s.sample_id: s for s in samples})
