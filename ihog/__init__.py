from .__about__ import __version__

from .errors import IHOGError, ShapeError, MissingDictionaryError, StateFileError
from .config import InversionConfig, load_config
from .dictionary import (
    PairedDictionary, DictionaryProvider, blurred_dictionary,
    load_paired_dictionary, save_paired_dictionary
)
from .windows import window_positions, extract_windows, normalize_windows
from .constraints import ConsistencyState, build_constraints
from .sparse_coder import solve_codes, scaled_lambda, column_lambdas
from .render import render, blend_patches, gaussian_window
from .invert import invert_hog, InversionResult, output_shape

__all__ = [
    "__version__",

    # Errors
    "IHOGError", "ShapeError", "MissingDictionaryError", "StateFileError",

    # Configuration
    "InversionConfig", "load_config",

    # Paired dictionary
    "PairedDictionary", "DictionaryProvider", "blurred_dictionary",
    "load_paired_dictionary", "save_paired_dictionary",

    # Pipeline stages
    "window_positions", "extract_windows", "normalize_windows",
    "ConsistencyState", "build_constraints",
    "solve_codes", "scaled_lambda", "column_lambdas",
    "render", "blend_patches", "gaussian_window",

    # Entry point
    "invert_hog", "InversionResult", "output_shape",
]
