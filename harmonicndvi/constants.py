"""Constants for per-pixel harmonic NDVI regression."""
import datetime as _dt

# Landsat Collection 2 Level-2 band names
BAND_RED = "SR_B4"
BAND_NIR = "SR_B5"
BAND_QA_PIXEL = "QA_PIXEL"
BAND_QA_RADSAT = "QA_RADSAT"
OPTICAL_PREFIX = "SR_B"
THERMAL_PREFIX = "ST_B"

# QA_PIXEL bits 0-4: fill, dilated cloud, cirrus, cloud, cloud shadow
QA_CLEAR_BITS = 0b11111

OPTICAL_SCALE = 0.0000275
OPTICAL_OFFSET = -0.2
THERMAL_SCALE = 0.00341802
THERMAL_OFFSET = 149.0

EPOCH = _dt.date(1970, 1, 1)

DEFAULT_HARMONICS = 3
DEFAULT_DEPENDENT = "NDVI"
DEFAULT_DATE_RANGE = ("2013-01-01", "2024-01-01")
DEFAULT_COMPOSITE_WINDOW = (6, 1, 9, 30)
DEFAULT_CRS = "EPSG:5070"
DEFAULT_SCALE = 30.0
DEFAULT_EXPORT_FORMAT = "GTiff"
DEFAULT_AMPLITUDE_DISPLAY_SCALE = 5.0
DEFAULT_BLOCK_SIZE = 1024
DEFAULT_OUTPUT_NAME = "Landsat_harmonic_regression"

# Fixed-point export encoding: round(v * QUANT_SCALE) as int16
QUANT_SCALE = 10000
NODATA_INT16 = -32768
INT16_MIN_VALID = -32767
INT16_MAX_VALID = 32767

MEAN_SUFFIX = "_mean"
N_OBS_BAND = "n_obs"
RMSE_BAND = "rmse"
