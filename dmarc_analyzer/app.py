import argparse
import json
import sys
from dataclasses import dataclass
from email.utils import getaddresses
from pathlib import Path
from typing import Optional, Sequence

import structlog

from dmarc_analyzer.analyzer import DmarcAnalyzer, MissingFeedbackElement
from dmarc_analyzer.content_type import Charset
from dmarc_analyzer.deserialization import (
    ReportExtractionError,
    get_aggregate_report_from_email,
)
from dmarc_analyzer.dmarc_event import AnalysisResult, Bad
from dmarc_analyzer.logging import configure_logging
from dmarc_analyzer.mime_part import MimeError, MimePart
from dmarc_analyzer.notification import compose_notification
from dmarc_analyzer.policy import InvalidPolicy, Policy
from dmarc_analyzer.smtp_client import ConnectionConfig, deliver

logger = structlog.get_logger()


def main(argv: Sequence[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze a DMARC aggregate report email and notify about "
        "approved servers failing authentication and unapproved servers "
        "passing it."
    )
    parser.add_argument(
        "--configuration",
        type=argparse.FileType("r"),
        default="/etc/dmarc-analyzer.json",
        help="Configuration file",
    )
    parser.add_argument(
        "--email-path",
        type=argparse.FileType("rb"),
        default=None,
        help="Report email to analyze, read from standard input if omitted",
    )
    parser.add_argument(
        "--domain",
        default=None,
        help="Recipient domain, taken from the first To address if omitted",
    )
    parser.add_argument(
        "--dry-run",
        type=Path,
        default=None,
        metavar="DIRECTORY",
        help="Write notifications into DIRECTORY instead of sending them",
    )
    parser.add_argument(
        "--debug",
        default=False,
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    configuration = json.load(args.configuration)
    args.configuration.close()

    configure_logging(configuration.get("logging", {}), debug=args.debug)

    try:
        policy = Policy.from_json(configuration)
    except InvalidPolicy as err:
        logger.error("Invalid configuration.", error=str(err))
        return 1
    logger.debug("Loaded policy.", policy=policy.to_json())

    outbox = args.dry_run
    if outbox is None and configuration.get("outbox"):
        outbox = Path(configuration["outbox"])
    app = App(
        policy=policy,
        smtp=ConnectionConfig(**configuration["smtp"])
        if "smtp" in configuration
        else None,
        outbox=outbox,
        notify_on_pass=configuration.get("notify_on_pass", False),
    )

    if args.email_path is None:
        raw = sys.stdin.buffer.read()
    else:
        raw = args.email_path.read()
        args.email_path.close()

    try:
        app.process_email(raw, domain=args.domain)
    except ReportExtractionError as err:
        logger.error(str(err), exc_info=err)
        return 1
    except (MimeError, MissingFeedbackElement) as err:
        logger.error("Failed to analyze report email.", error=str(err), exc_info=err)
        return 1
    return 0


def run():
    sys.exit(main(sys.argv[1:]))


def recipient_domain(msg: MimePart) -> str:
    addresses = getaddresses([msg.headers.get("to", "")])
    for _, address in addresses:
        if address:
            return address.rpartition("@")[2].lower()
    return ""


@dataclass(frozen=True)
class EmailAnalysis:
    domain: str
    result: AnalysisResult


class App:
    def __init__(
        self,
        *,
        policy: Policy,
        smtp: Optional[ConnectionConfig] = None,
        outbox: Optional[Path] = None,
        notify_on_pass: bool = False,
        charset: Charset = Charset.ISO_LATIN_1,
    ):
        self.policy = policy
        self.smtp = smtp
        self.outbox = outbox
        self.notify_on_pass = notify_on_pass
        self.charset = charset

    def analyze(self, raw: bytes, domain: Optional[str] = None) -> EmailAnalysis:
        msg = MimePart.from_bytes(raw, self.charset)
        if domain is None:
            domain = recipient_domain(msg)
        report = get_aggregate_report_from_email(msg)
        return EmailAnalysis(domain, DmarcAnalyzer(self.policy, domain).analyze(report))

    def process_email(self, raw: bytes, domain: Optional[str] = None) -> EmailAnalysis:
        analysis = self.analyze(raw, domain)
        log = logger.bind(domain=analysis.domain, org_name=analysis.result.org_name)
        if isinstance(analysis.result, Bad):
            log.info("Report has problems.", failures=len(analysis.result.failures))
        else:
            log.info("All records passed.")

        notification = compose_notification(
            self.policy,
            analysis.domain,
            analysis.result,
            raw.decode(self.charset.codec),
            notify_on_pass=self.notify_on_pass,
        )
        if notification is not None:
            deliver(notification, connection=self.smtp, outbox=self.outbox)
        return analysis
