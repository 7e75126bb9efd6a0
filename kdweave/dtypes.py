"""Local dtype policy for kdweave buffers."""

import jax.numpy as jnp
import numpy as np

# Point ids, node ids, box indices and node-to-point entries share one dtype.
INDEX_DTYPE = np.int64
COORD_DTYPE = np.float64
GEOMETRY_DTYPE = jnp.float64


def as_index(x):
    """Convert a scalar/array to the kdweave index dtype."""
    return np.asarray(x, dtype=INDEX_DTYPE)


def as_coords(x):
    """Convert a scalar/array to the kdweave coordinate dtype."""
    return np.asarray(x, dtype=COORD_DTYPE)


__all__ = ["COORD_DTYPE", "GEOMETRY_DTYPE", "INDEX_DTYPE", "as_coords", "as_index"]
