"""Game constants shared by the scoring, hint and persistence code."""

# Distance
EARTH_RADIUS_KM = 6371.0
# Canonical falloff distance for location accuracy. Older builds also used
# 20000 km on some paths; numbers from those builds will not match.
MAX_DISTANCE_KM = 5000.0

# Time accuracy halves every TIME_ACCURACY_SCALE_YEARS of difference
TIME_ACCURACY_SCALE_YEARS = 10.0

# Hints
HINTS_PER_ROUND = 2
HINTS_PER_GAME = 10
HINT_XP_PENALTY = 30
HINT_ACC_PENALTY = 30

# Rounds
DEFAULT_ROUNDS_PER_GAME = 5
DEFAULT_TIMER_SECONDS = 180

# Coordinates
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0

# Years
MIN_YEAR = 1800

# Storage
SNAPSHOT_STORAGE_KEY = "gh_current_game"
SNAPSHOT_MAX_AGE_MS = 24 * 60 * 60 * 1000
