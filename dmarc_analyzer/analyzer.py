from typing import Any, List, Mapping, Optional, Tuple

import structlog

from dmarc_analyzer.dmarc_event import (
    AnalysisResult,
    Bad,
    DmarcFailure,
    DmarcRecord,
    FailureReason,
    Good,
)
from dmarc_analyzer.policy import Policy

logger = structlog.get_logger()

UNKNOWN_ORG_NAME = "Unknown"

# (approved, passed SPF, passed DKIM) -> failure, None if the record is fine
DECISION_TABLE: Mapping[Tuple[bool, bool, bool], Optional[FailureReason]] = {
    (True, True, True): None,
    (True, False, False): FailureReason.APPROVED_SERVER_FAILED_FULLY,
    (True, False, True): FailureReason.APPROVED_SERVER_FAILED_SPF,
    (True, True, False): FailureReason.APPROVED_SERVER_FAILED_DKIM,
    (False, False, False): None,
    (False, True, False): FailureReason.UNAPPROVED_SERVER_PASSED_SPF,
    (False, False, True): None,
    (False, True, True): FailureReason.UNAPPROVED_SERVER_PASSED_FULLY,
}


class MissingFeedbackElement(Exception):
    def __init__(self, msg: str = "no feedback element was found in the xml"):
        super().__init__(msg)


def _child(node: Any, name: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(name)
    return None


def _string(node: Any) -> Optional[str]:
    if isinstance(node, str):
        return node
    if isinstance(node, Mapping) and isinstance(node.get("#text"), str):
        return node["#text"]
    return None


def _array(node: Any) -> List[Any]:
    if node is None:
        return []
    if isinstance(node, list):
        return node
    return [node]


def extract_records(tree: Mapping[str, Any]) -> Tuple[str, List[DmarcRecord]]:
    """Organization name and records of an aggregate report tree.

    Records lacking a source IP or a policy evaluated DKIM or SPF verdict are
    skipped.
    """
    if not isinstance(tree, Mapping) or "feedback" not in tree:
        raise MissingFeedbackElement()
    feedback = tree["feedback"]

    org_name = _string(_child(_child(feedback, "report_metadata"), "org_name"))

    records = []
    for index, record in enumerate(_array(_child(feedback, "record"))):
        row = _child(record, "row")
        source_ip = _string(_child(row, "source_ip"))
        policy_evaluated = _child(row, "policy_evaluated")
        dkim = _string(_child(policy_evaluated, "dkim"))
        spf = _string(_child(policy_evaluated, "spf"))
        if source_ip is None or dkim is None or spf is None:
            logger.debug("Skipping incomplete record.", index=index)
            continue
        records.append(
            DmarcRecord(
                source_ip=source_ip, passed_spf=spf == "pass", passed_dkim=dkim == "pass"
            )
        )
    return org_name or UNKNOWN_ORG_NAME, records


class DmarcAnalyzer:
    def __init__(self, policy: Policy, domain: str):
        self.policy = policy
        self.domain = domain

    def evaluate(self, record: DmarcRecord) -> Optional[DmarcFailure]:
        approved = self.policy.approves(record.source_ip, self.domain)
        reason = DECISION_TABLE[(approved, record.passed_spf, record.passed_dkim)]
        if reason is None:
            return None
        return DmarcFailure(source_ip=record.source_ip, reason=reason)

    def analyze(self, tree: Mapping[str, Any]) -> AnalysisResult:
        org_name, records = extract_records(tree)
        failures = tuple(
            failure
            for failure in (self.evaluate(record) for record in records)
            if failure is not None
        )
        logger.info(
            "Analyzed DMARC report.",
            domain=self.domain,
            org_name=org_name,
            records=len(records),
            failures=len(failures),
        )
        if failures:
            return Bad(org_name=org_name, failures=failures)
        return Good(org_name=org_name)


def analyze(tree: Mapping[str, Any], policy: Policy, domain: str) -> AnalysisResult:
    return DmarcAnalyzer(policy, domain).analyze(tree)
