"""Pydantic schemas for analyzer reports.

Payloads use camelCase keys on the wire; fields are snake_case with camelCase
aliases. Unknown keys are kept, since models routinely add commentary
fields.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Grade = Literal["A", "B", "C", "D", "F"]
Severity = Literal["Critical", "High", "Medium", "Low", "Informational"]


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class GradedReport(ReportModel):
    overall_grade: Grade
    score: float = Field(ge=0, le=100)
    summary: str


class Recommendation(ReportModel):
    priority: str
    action: str
    effort: str = ""


# Security


class SecurityIssue(ReportModel):
    severity: Severity
    category: str
    issue: str
    location: str | None = None
    impact: str
    remediation: str
    cve_id: str | None = None


class DependencyVulnerability(ReportModel):
    package: str
    current_version: str = ""
    vulnerability: str
    severity: Severity
    fixed_version: str | None = None
    cve_id: str | None = None


class HardcodedSecret(ReportModel):
    type: str
    location: str
    severity: Severity = "High"


class InsecurePattern(ReportModel):
    pattern: str
    location: str = ""
    severity: Severity
    remediation: str = ""


class Vulnerabilities(ReportModel):
    dependencies: list[DependencyVulnerability] = []
    hardcoded_secrets: list[HardcodedSecret] = []
    insecure_patterns: list[InsecurePattern] = []


class SecurityReport(GradedReport):
    critical_issues: list[SecurityIssue]
    vulnerabilities: Vulnerabilities = Field(default_factory=Vulnerabilities)
    recommendations: list[Recommendation] = []


# License


class Dealbreaker(ReportModel):
    package: str
    license: str
    reason: str


class LicenseRisk(ReportModel):
    severity: Severity
    category: str
    issue: str
    packages: list[str] = []
    impact: str
    remediation: str


class MergerImpact(ReportModel):
    blocking: bool
    concerns: list[str] = []
    remediation_cost: str = ""


class LicenseReport(GradedReport):
    dealbreakers: list[Dealbreaker]
    license_breakdown: dict[str, Any] = {}
    risks: list[LicenseRisk] = []
    ma_impact: MergerImpact | None = None
    recommendations: list[Recommendation] = []


# Quality


class QualityMetrics(ReportModel):
    lines_of_code: int
    code_files: int
    test_files: int
    test_coverage: float | None = None


class TechnicalDebtIssue(ReportModel):
    type: str
    description: str
    severity: Severity
    location: str | None = None
    effort_to_fix: str = ""


class QualityReport(GradedReport):
    technical_debt_percentage: float = Field(ge=0, le=100)
    metrics: QualityMetrics
    technical_debt: list[TechnicalDebtIssue] = []
    recommendations: list[Recommendation] = []


# Cost


class CostBottleneck(ReportModel):
    bottleneck: str
    severity: Severity
    scale_limit: str = ""
    remediation: str


class ScalingProjection(ReportModel):
    scale: str
    users: int
    estimated_cost: str


class CostReport(GradedReport):
    monthly_cost: str
    scaling_projections: list[ScalingProjection] = []
    bottlenecks: list[CostBottleneck] = []
    recommendations: list[Recommendation] = []


# HIPAA


class ComplianceGap(ReportModel):
    regulation: str
    requirement: str
    status: str
    finding: str
    severity: Severity
    remediation: str


class CriticalViolation(ReportModel):
    violation: str
    regulation: str
    severity: Severity
    remediation: str


class HipaaReport(GradedReport):
    phi_fields: list[str] = []
    compliance_gaps: list[ComplianceGap] = []
    critical_violations: list[CriticalViolation] = []
    recommendations: list[Recommendation] = []


# Dotted paths of list fields whose items carry a severity, per report
SEVERITY_FIELDS: dict[type[GradedReport], tuple[str, ...]] = {
    SecurityReport: (
        "criticalIssues",
        "vulnerabilities.dependencies",
        "vulnerabilities.hardcodedSecrets",
        "vulnerabilities.insecurePatterns",
    ),
    LicenseReport: ("risks",),
    QualityReport: ("technicalDebt",),
    CostReport: ("bottlenecks",),
    HipaaReport: ("complianceGaps", "criticalViolations"),
}
