"""Application-wide constants."""

APP_NAME = "acfdet"
VERSION = "1.0.0"

# Model file formats understood by the persistence layer
SUPPORTED_MODEL_FORMATS = [".json", ".yaml", ".yml"]

# RGB -> XYZ projection (row major)
RGB_TO_XYZ = (
    (0.430574, 0.341550, 0.178325),
    (0.222015, 0.706655, 0.071330),
    (0.020183, 0.129553, 0.939180),
)

# CIE LUV constants
LUV_Y0 = 0.00885645167       # (6/29)^3, cube-root / linear breakpoint
LUV_A = 903.296296296        # (29/3)^3
LUV_UN = 0.197833
LUV_VN = 0.468331
LUV_MAXI = 1.0 / 270.0
LUV_MINU = -88.0 * LUV_MAXI
LUV_MINV = -134.0 * LUV_MAXI

# Per channel type power-law exponents used when the pyramid cannot estimate
# them from the image (color, gradient magnitude, gradient histogram).
DEFAULT_LAMBDAS = (0.0, 0.1105, 0.1083)

# Thresholds for uint8 channel stacks are stored pre-multiplied by this factor
UINT8_SCALE = 255.0
