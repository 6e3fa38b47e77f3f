"""The aperture parameterization of multileaf-collimator plans.

An [`ApertureInfo`][daopt.aperture.ApertureInfo] object describes the beams of
a plan, the shapes delivered by them, and the flat vector of shape weights and
leaf positions that is optimized. The functions in this module convert that
vector into bixel weights and into its structured per-shape representation.
"""

from ._aperture import ApertureInfo, Beam, Shape
from ._conversion import (
    bixel_weight_jacobian,
    compute_bixel_weights,
    create_aperture_info,
    split_aperture_vector,
    vector_to_aperture,
)

__all__ = [
    "ApertureInfo",
    "Beam",
    "Shape",
    "bixel_weight_jacobian",
    "compute_bixel_weights",
    "create_aperture_info",
    "split_aperture_vector",
    "vector_to_aperture",
]
