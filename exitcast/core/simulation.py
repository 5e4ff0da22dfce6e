"""
Contains the core simulation logic:
- draw_normal_samples: Reproducible, chunk-seeded normal draws (optionally parallel).
- sample_exit_caps / sample_rent_growth: Draws for the two uncertain drivers.
- compose_valuation: NOI, sale price and ROI per simulated world.
- run_monte_carlo: Orchestrates sampling and valuation for one run.

Cap-rate and rent-growth draws are independent of each other. Real markets
often move them together; modeling that correlation is a known simplification
left for later.
"""

import math
import time
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .inputs import SimulationInputs
from .constants import SAMPLE_CHUNK_SIZE, ROI_DECIMALS, FLOAT_ATOL
from .errors import UncertaintyError, DivisionError
from .horizon import HorizonBand
from .utils import simulation_error_handler, derive_seed_sequences, read_only

logger = logging.getLogger(__name__)

SeedLike = Union[int, np.random.SeedSequence]

OUTPUT_VECTORS = ("exit_caps_sim", "exit_year_rents_sim", "exit_year_noi_sim", "sale_price_sim", "roi_sim")


# --- Sampling ---
def _as_seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    # A fresh copy each call: spawn() on a shared SeedSequence would advance it.
    if isinstance(seed, np.random.SeedSequence):
        return np.random.SeedSequence(entropy=seed.entropy, spawn_key=seed.spawn_key)
    return np.random.SeedSequence(seed)


def _fill_chunk(buffer: np.ndarray, start: int, stop: int, seed_seq: np.random.SeedSequence,
                mean: float, stddev: float) -> None:
    rng = np.random.default_rng(seed_seq)
    buffer[start:stop] = rng.normal(mean, stddev, size=stop - start)


@simulation_error_handler
def draw_normal_samples(
    mean: float,
    stddev: float,
    n_sims: int,
    seed: SeedLike,
    n_jobs: int = 1,
    chunk_size: int = SAMPLE_CHUNK_SIZE
) -> np.ndarray:
    """
    Draws n_sims independent N(mean, stddev) variates.

    The output is split into fixed-size chunks, each with its own child seed
    spawned from `seed`, so the result is bit-identical for any n_jobs.

    Args:
        mean: Distribution mean.
        stddev: Distribution standard deviation (>= 0).
        n_sims: Number of draws (>= 1).
        seed: Integer seed or numpy SeedSequence.
        n_jobs: joblib worker threads. Each writes its own index range of the buffer.
        chunk_size: Draws per seeded chunk.

    Returns:
        A float array of length n_sims.
    """
    if n_sims < 1:
        raise ValueError(f"n_sims must be at least 1, got {n_sims}")
    if not (np.isfinite(mean) and np.isfinite(stddev)):
        raise UncertaintyError(f"Cannot sample from a non-finite band (mean={mean}, stddev={stddev}).")
    if stddev < 0:
        raise UncertaintyError(f"Cannot sample with negative stddev {stddev}.")

    n_chunks = math.ceil(n_sims / chunk_size)
    chunk_seeds = _as_seed_sequence(seed).spawn(n_chunks)
    bounds = [(i * chunk_size, min(n_sims, (i + 1) * chunk_size)) for i in range(n_chunks)]
    samples = np.empty(n_sims, dtype=float)

    if n_jobs == 1 or n_chunks == 1:
        for (start, stop), seed_seq in zip(bounds, chunk_seeds):
            _fill_chunk(samples, start, stop, seed_seq, mean, stddev)
    else:
        with Parallel(n_jobs=n_jobs, backend="threading") as parallel:
            parallel(
                delayed(_fill_chunk)(samples, start, stop, seed_seq, mean, stddev)
                for (start, stop), seed_seq in zip(bounds, chunk_seeds)
            )
    return samples


def sample_exit_caps(band: HorizonBand, n_sims: int, seed: SeedLike, n_jobs: int = 1) -> np.ndarray:
    """
    Exit cap rate draws. Negative normal draws are reflected to positive
    (absolute value) rather than discarded or clamped.
    """
    draws = draw_normal_samples(band.mean, band.stddev, n_sims, seed, n_jobs=n_jobs)
    reflected = int((draws < 0).sum())
    if reflected:
        logger.warning(f"Reflected {reflected} negative exit cap rate draws to positive.")
    return np.abs(draws)


def sample_rent_growth(band: HorizonBand, n_sims: int, seed: SeedLike, n_jobs: int = 1) -> np.ndarray:
    """Cumulative rent growth draws, used as-is (negative growth is a valid outcome)."""
    return draw_normal_samples(band.mean, band.stddev, n_sims, seed, n_jobs=n_jobs)


# --- Valuation ---
@dataclass(frozen=True)
class ValuationResult:
    """Index-aligned NOI, sale price and ROI vectors."""
    noi_sim: np.ndarray
    sale_price_sim: np.ndarray
    roi_sim: np.ndarray
    finite_mask: np.ndarray


@simulation_error_handler
def compose_valuation(
    rent_growth_sim: Sequence[float],
    exit_cap_sim: Sequence[float],
    current_noi: float,
    purchase_price: float
) -> ValuationResult:
    """
    Elementwise valuation of each simulated world i:
        noi[i]        = rent_growth[i] * current_noi + current_noi
        sale_price[i] = noi[i] / exit_cap[i]
        roi[i]        = round((sale_price[i] - purchase_price) / purchase_price, 2)

    No aggregation happens here. Sale prices that overflow to a non-finite
    value are flagged False in finite_mask and must be filtered downstream.

    Raises:
        DivisionError: if any exit cap rate is zero or non-finite.
        ValueError: on mismatched lengths or a zero purchase price.
    """
    rent_growth = np.asarray(rent_growth_sim, dtype=float)
    exit_caps = np.asarray(exit_cap_sim, dtype=float)
    if rent_growth.shape != exit_caps.shape:
        raise ValueError(f"Vectors are not index-aligned: {rent_growth.shape} vs {exit_caps.shape}")
    if abs(purchase_price) <= FLOAT_ATOL:
        raise ValueError("purchase_price must be non-zero to compute ROI.")

    bad_caps = (exit_caps == 0.0) | ~np.isfinite(exit_caps)
    if bad_caps.any():
        first = int(np.flatnonzero(bad_caps)[0])
        raise DivisionError(
            f"{int(bad_caps.sum())} simulated exit cap rate(s) are zero or non-finite "
            f"(first at index {first}: {exit_caps[first]})."
        )

    noi = rent_growth * current_noi + current_noi
    with np.errstate(over="ignore", invalid="ignore"):
        sale_price = noi / exit_caps
        roi = np.round((sale_price - purchase_price) / purchase_price, ROI_DECIMALS)

    finite_mask = np.isfinite(noi) & np.isfinite(sale_price) & np.isfinite(roi)
    if not finite_mask.all():
        logger.warning(f"Flagged {int((~finite_mask).sum())} simulations with non-finite sale price or ROI.")

    return ValuationResult(
        noi_sim=read_only(noi),
        sale_price_sim=read_only(sale_price),
        roi_sim=read_only(roi),
        finite_mask=read_only(finite_mask),
    )


# --- Results ---
@dataclass(frozen=True)
class SimulationResults:
    """Output of one run: five index-aligned vectors plus the bands they came from."""
    exit_caps_sim: np.ndarray
    exit_year_rents_sim: np.ndarray
    exit_year_noi_sim: np.ndarray
    sale_price_sim: np.ndarray
    roi_sim: np.ndarray
    finite_mask: np.ndarray
    cap_rate_band: HorizonBand
    rent_growth_band: HorizonBand
    random_seed: int
    models: Dict[str, str] = field(default_factory=dict)

    @property
    def num_simulations(self) -> int:
        return int(self.roi_sim.size)

    @property
    def num_flagged(self) -> int:
        return int((~self.finite_mask).sum())

    def finite(self, name: str) -> np.ndarray:
        """Values of one output vector for simulations whose valuation is finite."""
        if name not in OUTPUT_VECTORS:
            raise KeyError(f"Unknown output vector '{name}'. Expected one of {OUTPUT_VECTORS}.")
        return getattr(self, name)[self.finite_mask]

    def to_frame(self) -> pd.DataFrame:
        """All five vectors plus the finite flag, one row per simulation."""
        data = {name: getattr(self, name) for name in OUTPUT_VECTORS}
        data["is_finite"] = self.finite_mask
        return pd.DataFrame(data)


@simulation_error_handler
def run_monte_carlo(
    inputs: SimulationInputs,
    cap_rate_band: HorizonBand,
    rent_growth_band: HorizonBand,
    seeds: Optional[Tuple[SeedLike, SeedLike]] = None
) -> SimulationResults:
    """
    Samples both drivers and composes the valuation.

    Args:
        inputs: Run configuration (num_simulations, current_noi, purchase_price, n_jobs, random_seed).
        cap_rate_band: Exit cap rate distribution at the sale date.
        rent_growth_band: Cumulative rent growth distribution at the sale date.
        seeds: (exit cap seed, rent growth seed). Derived from inputs.random_seed if omitted.
    """
    start_time = time.time()
    n_sims = inputs.num_simulations
    logger.info(f"Starting Monte Carlo: {n_sims} sims, Hold: {inputs.hold_years} yrs, Seed: {inputs.random_seed}.")
    if seeds is None:
        seeds = tuple(derive_seed_sequences(inputs.random_seed, 2))
    cap_seed, rent_seed = seeds

    exit_caps = sample_exit_caps(cap_rate_band, n_sims, cap_seed, n_jobs=inputs.n_jobs)
    rent_growth = sample_rent_growth(rent_growth_band, n_sims, rent_seed, n_jobs=inputs.n_jobs)
    valuation = compose_valuation(rent_growth, exit_caps, inputs.current_noi, inputs.purchase_price)

    end_time = time.time()
    logger.info(f"Monte Carlo finished. Flagged: {int((~valuation.finite_mask).sum())}/{n_sims}. Time: {end_time - start_time:.2f}s.")
    return SimulationResults(
        exit_caps_sim=read_only(exit_caps),
        exit_year_rents_sim=read_only(rent_growth),
        exit_year_noi_sim=valuation.noi_sim,
        sale_price_sim=valuation.sale_price_sim,
        roi_sim=valuation.roi_sim,
        finite_mask=valuation.finite_mask,
        cap_rate_band=cap_rate_band,
        rent_growth_band=rent_growth_band,
        random_seed=inputs.random_seed,
    )
