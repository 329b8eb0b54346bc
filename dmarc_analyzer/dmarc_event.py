from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


@dataclass(frozen=True)
class DmarcRecord:
    source_ip: str
    passed_spf: bool
    passed_dkim: bool


class FailureReason(Enum):
    APPROVED_SERVER_FAILED_FULLY = "approvedServerFailedFully"
    APPROVED_SERVER_FAILED_SPF = "approvedServerFailedSPF"
    APPROVED_SERVER_FAILED_DKIM = "approvedServerFailedDKIM"
    UNAPPROVED_SERVER_PASSED_SPF = "unapprovedServerPassedSPF"
    UNAPPROVED_SERVER_PASSED_FULLY = "unapprovedServerPassedFully"

    @property
    def concerns_approved_server(self) -> bool:
        return self in (
            FailureReason.APPROVED_SERVER_FAILED_FULLY,
            FailureReason.APPROVED_SERVER_FAILED_SPF,
            FailureReason.APPROVED_SERVER_FAILED_DKIM,
        )


@dataclass(frozen=True)
class DmarcFailure:
    source_ip: str
    reason: FailureReason


@dataclass(frozen=True)
class Good:
    org_name: str


@dataclass(frozen=True)
class Bad:
    org_name: str
    failures: Tuple[DmarcFailure, ...]


AnalysisResult = Union[Good, Bad]
