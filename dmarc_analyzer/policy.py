import json
from dataclasses import dataclass, field
from email.utils import parseaddr
from typing import Any, Dict, Mapping, Tuple

from dmarc_analyzer.address_spec import AddressSpec, matches, parse_address_spec


class InvalidPolicy(ValueError):
    pass


@dataclass(frozen=True)
class Policy:
    """Servers approved to send mail for the monitored domains.

    ``approved_servers`` applies to every domain, ``domain_specific_servers``
    adds servers for individual recipient domains.
    """

    source_email: str
    problem_email: str
    approved_servers: Tuple[AddressSpec, ...] = ()
    domain_specific_servers: Mapping[str, Tuple[AddressSpec, ...]] = field(
        default_factory=dict
    )

    @classmethod
    def from_json(cls, document: Mapping[str, Any]) -> "Policy":
        if not isinstance(document, Mapping):
            raise InvalidPolicy("the policy must be a JSON object")
        domain_specific = document.get("domainSpecificServers") or {}
        if not isinstance(domain_specific, Mapping):
            raise InvalidPolicy("'domainSpecificServers' must be a JSON object")
        return cls(
            source_email=_email_address(document, "sourceEmail"),
            problem_email=_email_address(document, "problemEmail"),
            approved_servers=_address_specs(
                document.get("approvedServers", []), "approvedServers"
            ),
            domain_specific_servers={
                domain.lower(): _address_specs(specs, f"domainSpecificServers.{domain}")
                for domain, specs in domain_specific.items()
            },
        )

    @classmethod
    def load(cls, path) -> "Policy":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_json(json.load(f))

    def to_json(self) -> Dict[str, Any]:
        return {
            "sourceEmail": self.source_email,
            "problemEmail": self.problem_email,
            "approvedServers": [spec.render() for spec in self.approved_servers],
            "domainSpecificServers": {
                domain: [spec.render() for spec in specs]
                for domain, specs in self.domain_specific_servers.items()
            },
        }

    def servers_for(self, domain: str) -> Tuple[AddressSpec, ...]:
        return self.approved_servers + tuple(
            self.domain_specific_servers.get(domain.lower(), ())
        )

    def approves(self, source_ip: str, domain: str) -> bool:
        address = parse_address_spec(source_ip)
        return any(matches(spec, address) for spec in self.servers_for(domain))


def _email_address(document: Mapping[str, Any], key: str) -> str:
    value = document.get(key)
    if not isinstance(value, str):
        raise InvalidPolicy(f"'{key}' must be an e-mail address")
    _, address = parseaddr(value)
    if "@" not in address:
        raise InvalidPolicy(f"'{key}' is not a valid e-mail address: '{value}'")
    return value


def _address_specs(specs: Any, key: str) -> Tuple[AddressSpec, ...]:
    if not isinstance(specs, list) or not all(isinstance(s, str) for s in specs):
        raise InvalidPolicy(f"'{key}' must be a list of strings")
    return tuple(parse_address_spec(spec) for spec in specs)
