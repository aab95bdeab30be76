import pytest

from csv_tscore.engine import Configuration
from csv_tscore.parser import parse_table


SCHOOL_CSV = "School,Year,Score\nA,2020,80\nA,2021,90\nB,2020,40\nB,2021,60\n"

REGION_CSV = (
    "학교명,기준연도,지역,점수\n"
    "가,2020,서울,80\n"
    "나,2020,경기,60\n"
    "다,2020,부산,40\n"
    "가,2021,서울,90\n"
    "나,2021,경기도,70\n"
    "다,2021,부산,50\n"
)


@pytest.fixture
def school_table():
    return parse_table(SCHOOL_CSV)


@pytest.fixture
def school_config():
    return Configuration(
        entity_field="School",
        period_field="Year",
        metric_fields=("Score",),
        selected_entities=("A", "B"),
    )


@pytest.fixture
def region_table():
    return parse_table(REGION_CSV)
