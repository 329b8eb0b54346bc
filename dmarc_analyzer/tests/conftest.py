import pytest

from dmarc_analyzer.policy import Policy
from dmarc_analyzer.tests.sample_reports import SAMPLE_POLICY


@pytest.fixture(name="policy")
def fixture_policy() -> Policy:
    return Policy.from_json(SAMPLE_POLICY)
