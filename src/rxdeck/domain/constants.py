"""Centralized constants for rxdeck.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Time units (epoch milliseconds) ----------
MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

# ---------- Interval Scheduler ----------
MIN_EASE_FACTOR = 1.3
AGAIN_EASE_PENALTY = 0.2
HARD_EASE_PENALTY = 0.15
EASY_EASE_BONUS = 0.15
HARD_INTERVAL_MULTIPLIER = 1.2
LEARNING_HARD_STEP_MULTIPLIER = 1.5
GRADUATING_INTERVAL_DAYS = 1.0
FALLBACK_LEARNING_STEP = 1  # minutes, used when no learning steps are configured

# ---------- Defaults (overridable via AppConfig) ----------
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_REVIEWS_PER_DAY = 100
DEFAULT_LEARNING_STEPS = [1, 10]  # 1 min, 10 min
DEFAULT_INITIAL_EASE_FACTOR = 2.5
DEFAULT_EASY_BONUS = 1.3

# ---------- Session Queue ----------
DEFAULT_BATCH_SIZE = 10
DEFAULT_REINFORCEMENT_INTERVAL = 3  # cards shown between easy-pool injections
DEFAULT_PROMOTION_THRESHOLD = 5  # confident active cards needed (exclusive) to promote
DEFAULT_MAX_SESSIONS = 32  # in-process study sessions kept by the HTTP server

# Session-local delays per grade, independent of the persistent scheduler.
SESSION_DELAY_AGAIN = 1 * MS_PER_MINUTE
SESSION_DELAY_HARD = 3 * MS_PER_MINUTE
SESSION_DELAY_GOOD = 15 * MS_PER_MINUTE
SESSION_DELAY_EASY = 1 * MS_PER_HOUR

CONFIDENT_STREAK = 2

# ---------- Preloaded decks ----------
HAMILTON_DECK_ID = "deck_hamilton_v1"
CARDIO_DECK_ID = "deck_cardio_v1"
PRELOADED_DATA_FILE = "preloaded.yaml"
