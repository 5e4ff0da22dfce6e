# exitcast/core/utils.py
"""
Utility functions for the exitcast core: error logging, seed derivation and
finite-value filtering.
"""
import numpy as np
import logging
from typing import List, Tuple
from functools import wraps

logger = logging.getLogger(__name__)


def simulation_error_handler(func):
    """
    Decorator to consistently log errors from forecasting and simulation functions.
    The exception is re-raised so a failing stage aborts the run instead of
    handing a default value to the next stage.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}", exc_info=True)
            raise
    return wrapper


def derive_seed_sequences(seed: int, n_children: int) -> List[np.random.SeedSequence]:
    """
    Spawns independent child seed sequences from a single root seed.

    Args:
        seed: Root seed for the run (SimulationInputs.random_seed).
        n_children: Number of independent streams required.

    Returns:
        A list of numpy SeedSequence objects. The same seed always yields the
        same children in the same order.
    """
    if n_children < 1:
        raise ValueError(f"n_children must be at least 1, got {n_children}")
    return np.random.SeedSequence(seed).spawn(n_children)


def get_finite_values(values) -> Tuple[np.ndarray, int]:
    """
    Drops NaN and +/-inf entries from a numeric vector.

    Returns:
        A tuple of (finite values as a float array, number of values dropped).
    """
    arr = np.asarray(values, dtype=float)
    mask = np.isfinite(arr)
    dropped = int(arr.size - mask.sum())
    if dropped:
        logger.warning(f"Dropped {dropped} non-finite values out of {arr.size}.")
    return arr[mask], dropped


def read_only(arr: np.ndarray) -> np.ndarray:
    """Returns the array with its write flag cleared."""
    arr.setflags(write=False)
    return arr
