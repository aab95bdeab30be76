"""
Deterministic parsing, scoring and export rules.

This file exists to keep fixed tokens and labels in one place.
"""

DELIMITER = ","
QUOTE_CHAR = '"'

TARGET_ENCODING = "utf-8-sig"  # UTF-8 with BOM

# Header keywords used to pre-select columns. Korean tokens match as-is,
# the others case-insensitively.
ENTITY_KEYWORDS = ("학교", "기관", "대상", "명", "school", "institution", "entity", "name")
PERIOD_KEYWORDS = ("연도", "년도", "년", "기준연도", "year", "period")

# Capital-region tokens for the metro cohort.
METRO_TOKENS = ("서울", "경기", "인천", "수도권")

NEUTRAL_SCORE = 50.0
SCORE_MIN = 0.0
SCORE_MAX = 100.0

SCORE_BANDS = (
    (60.0, "strong"),
    (50.0, "average"),
    (40.0, "weak"),
)
LOWEST_BAND = "poor"

METRO_COHORT = "metro"
NATIONWIDE_COHORT = "nationwide"
COHORT_LABELS = {
    METRO_COHORT: "🏙️ 수도권평균",
    NATIONWIDE_COHORT: "🇰🇷 전국평균",
}

ENTITY_HEADER = "대상명"
COMPOSITE_HEADER = "종합 T점수"
AVERAGE_HEADER = "평균"

LEADERBOARD_FILENAME = "T점수_분석_{baseline}.csv"
SERIES_FILENAME = "{metric}_연도별_분석.csv"
