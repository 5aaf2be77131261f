"""Vulnerability correlator engine — OSV lookup and finding assembly, no storage."""

from depsentinel.engines.vuln_correlator.assembler import (
    assemble_findings,
    fixed_version_of,
    severity_of,
)
from depsentinel.engines.vuln_correlator.models import (
    BatchQueryResult,
    Finding,
    ScanResult,
    VulnerabilityDetail,
)
from depsentinel.engines.vuln_correlator.osv_client import (
    OsvClient,
    RateLimitError,
    RegistryError,
)

__all__ = [
    "BatchQueryResult",
    "Finding",
    "OsvClient",
    "RateLimitError",
    "RegistryError",
    "ScanResult",
    "VulnerabilityDetail",
    "assemble_findings",
    "fixed_version_of",
    "severity_of",
]
